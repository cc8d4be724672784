"""
                        Services Module

Business logic of the order lifecycle, each external collaborator behind
a narrow interface with swappable implementations.

Services:
    - catalog: read-only location / menu / customization lookups
    - pricing: pure cart pricing
    - store: transactional order persistence
    - lifecycle: order creation and status workflow
    - realtime: live event fan-out to connected clients
"""
