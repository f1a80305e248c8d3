from storefront.routers import orders, memberships, nets, vouchers, refunds, shipments, admin

__all__ = ["orders", "memberships", "nets", "vouchers", "refunds", "shipments", "admin"]
