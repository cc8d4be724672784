"""
                Restaurant Order Lifecycle Service

Multi-location restaurant ordering backend: server-side cart pricing,
atomic order creation, role-gated status workflow and live order
broadcast to kitchen, waiter and customer clients.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
