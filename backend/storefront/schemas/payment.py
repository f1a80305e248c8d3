"""
Payment Schemas
"""
from pydantic import BaseModel, ConfigDict, Field


class PaymentStartRequest(BaseModel):
    """Body of POST /{payable}/{id}/pay/start"""
    model_config = ConfigDict(populate_by_name=True)

    payment_method: str = Field(..., alias="paymentMethod", max_length=20, description="alipay | paypal | nets")
