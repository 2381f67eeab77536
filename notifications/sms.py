import re
import logging

import requests
from django.conf import settings

from .exceptions import SMSDeliveryError

logger = logging.getLogger(__name__)

_PHONE_NOISE = re.compile(r'[\s\-()]')


class MNotifyService:
    """Client for the mNotify quick SMS API."""

    SUCCESS_CODE = '2000'

    def __init__(self, api_key=None, sender_id=None, url=None):
        self.api_key = api_key if api_key is not None else settings.MNOTIFY_API_KEY
        self.sender_id = sender_id or settings.MNOTIFY_SENDER_ID
        self.url = url or settings.MNOTIFY_SMS_URL
        if not self.api_key:
            logger.warning("MNotify API key not configured. SMS notifications will be disabled.")

    @property
    def enabled(self):
        return bool(self.api_key)

    @staticmethod
    def clean_phone(phone):
        return _PHONE_NOISE.sub('', phone or '')

    def send_sms(self, recipient, message, sender_id=None):
        """
        Send a single SMS.

        Args:
            recipient: phone number, spaces/dashes/parentheses are stripped
            message: text body
            sender_id: overrides the configured sender name

        Returns:
            dict: decoded gateway response

        Raises:
            SMSDeliveryError: missing API key, transport failure or a non-success gateway code
        """
        if not self.enabled:
            raise SMSDeliveryError("MNotify API key not configured")

        phone = self.clean_phone(recipient)
        payload = {
            "key": self.api_key,
            "recipient": [phone],
            "sender": sender_id or self.sender_id,
            "message": message,
        }

        try:
            logger.info(f"Sending SMS to {phone}")
            response = requests.post(
                self.url,
                params={"key": self.api_key},
                json=payload,
                headers={"Accept": "application/json"},
                timeout=30,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"MNotify API error for {phone}: {e}")
            raise SMSDeliveryError(f"MNotify service error: {e}") from e

        if data.get('status') != 'success' and str(data.get('code')) != self.SUCCESS_CODE:
            logger.error(f"MNotify rejected SMS to {phone}: {data}")
            raise SMSDeliveryError(data.get('message') or 'SMS sending failed')

        logger.info(f"SMS sent to {phone}")
        return data
