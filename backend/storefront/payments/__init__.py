"""
Payment core
- base: provider contract and result types
- alipay, paypal, nets: gateway adapters
- sessions: QR payment session store
- registry: PaymentMethod -> adapter
- workflow: payable state machine (start, status, confirm, finish)
- notifier: Server-Sent Events status stream
"""
