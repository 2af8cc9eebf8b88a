"""Notification request and gateway message schemas."""

from pydantic import BaseModel, Field


class NotificationButton(BaseModel):
    """Web link button attached to a message."""

    name: str
    type: str = "WL"
    url_mobile: str
    url_pc: str | None = None


class NotificationRequest(BaseModel):
    """Rendered message for one recipient."""

    recipient: str
    template_id: str
    title: str
    body: str
    device_id: str
    device_name: str | None = None
    device_location: str | None = None
    kind: str = "alert"  # alert | recovery | online | offline
    buttons: list[NotificationButton] = []


class AlimtalkMessage(BaseModel):
    """One entry of the Alimtalk gateway send payload."""

    message_type: str = "at"
    phn: str
    profile: str
    tmpl_id: str = Field(..., alias="tmplId")
    msg: str
    sms_kind: str = Field("L", alias="smsKind")
    msg_sms: str = Field(..., alias="msgSms")
    sms_sender: str = Field(..., alias="smsSender")
    sms_lms_title: str = Field(..., alias="smsLmsTit")
    reserve_dt: str = Field("00000000000000", alias="reserveDt")
    button1: dict[str, str] | None = None

    model_config = {"populate_by_name": True}
