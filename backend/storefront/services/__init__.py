"""
Storefront services around the payment core
- pricing: delivery fee and discount math
- vouchers: validation, use/release, membership issuance
- checkout: cart to order with stock reservation
- memberships: plans, subscription, activation window, expiry
- refunds: refund requests and admin review
- shipments: shipment and tracking history
"""
