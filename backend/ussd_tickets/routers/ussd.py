"""USSD gateway callback — one request per keypress, whole path every time."""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Form
from fastapi.responses import PlainTextResponse

from ussd_tickets.dependencies import get_notifier, get_session_machine
from ussd_tickets.services.notifier import Notifier, notify_session_end
from ussd_tickets.services.session_machine import SessionStateMachine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_class=PlainTextResponse)
def ussd_callback(
    background_tasks: BackgroundTasks,
    phoneNumber: str = Form(""),
    text: str = Form(""),
    sessionId: str = Form(""),
    serviceCode: str = Form(""),
    machine: SessionStateMachine = Depends(get_session_machine),
    notifier: Notifier = Depends(get_notifier),
):
    """Render the next screen; SMS the final message once the session ends."""
    logger.info("USSD %s session=%s code=%s path=%r", phoneNumber, sessionId, serviceCode, text)
    response = machine.handle(phoneNumber, text)
    if phoneNumber:
        background_tasks.add_task(notify_session_end, notifier, phoneNumber, response)
    return PlainTextResponse(response)
