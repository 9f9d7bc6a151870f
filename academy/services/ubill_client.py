"""
UBill SMS gateway client.

Like the email providers, calls never raise: each returns a result dict
with 'success', 'provider', 'message_id' and 'error' keys.
"""

import os
import re
import logging
from typing import Optional, Dict, Any, List, Union
from xml.sax.saxutils import escape

import requests

from academy.db import models

logger = logging.getLogger(__name__)

UBILL_BASE_URL = 'https://api.ubill.dev/v1/sms'

STATUS_SENT = 0
STATUS_DELIVERED = 1
STATUS_NOT_DELIVERED = 2
STATUS_AWAITING = 3
STATUS_ERROR = 4

_STATUS_MAP = {
    STATUS_SENT: models.SmsStatus.SENT,
    STATUS_DELIVERED: models.SmsStatus.DELIVERED,
    STATUS_NOT_DELIVERED: models.SmsStatus.UNDELIVERED,
    STATUS_AWAITING: models.SmsStatus.AWAITING,
    STATUS_ERROR: models.SmsStatus.ERROR,
}


def map_ubill_status(status_id: Union[int, str, None]) -> str:
    try:
        return _STATUS_MAP.get(int(status_id), models.SmsStatus.PENDING)
    except (TypeError, ValueError):
        return models.SmsStatus.PENDING


class UBillConfig:
    """SMS gateway configuration read from the environment."""

    def __init__(self):
        self.api_key = os.getenv('UBILL_API_KEY', '')
        self.brand_id = os.getenv('UBILL_BRAND_ID', '')
        limit = os.getenv('SMS_DAILY_LIMIT', '').strip()
        self.daily_limit = int(limit) if limit.isdigit() else None

    def is_configured(self) -> bool:
        return bool(self.api_key and self.brand_id)

    def validate(self) -> List[str]:
        errors = []
        if not self.api_key:
            errors.append("UBILL_API_KEY is required")
        if not self.brand_id:
            errors.append("UBILL_BRAND_ID is required")
        return errors


class UBillClient:
    def __init__(self, config: Optional[UBillConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or UBillConfig()
        self.http = session or requests.Session()

    def is_configured(self) -> bool:
        return self.config.is_configured()

    @property
    def brand_id(self) -> str:
        return self.config.brand_id

    @property
    def daily_limit(self) -> Optional[int]:
        return self.config.daily_limit

    @staticmethod
    def build_request(brand_id: str, numbers: List[str], text: str, stop_list: bool = False) -> str:
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<request>\n'
            f'    <brandID>{escape(str(brand_id))}</brandID>\n'
            f'    <numbers>{",".join(numbers)}</numbers>\n'
            f'    <text>{escape(text, {chr(34): "&quot;", chr(39): "&apos;"})}</text>\n'
            f'    <stopList>{"true" if stop_list else "false"}</stopList>\n'
            '</request>'
        )

    @staticmethod
    def parse_response(xml: str) -> Dict[str, Any]:
        status = re.search(r'<statusID>(\d+)</statusID>', xml or '')
        sms_id = re.search(r'<smsID>(\d+)</smsID>', xml or '')
        message = re.search(r'<message>([^<]*)</message>', xml or '')
        return {
            'status_id': int(status.group(1)) if status else -1,
            'sms_id': sms_id.group(1) if sms_id else None,
            'message': message.group(1) if message else None,
        }

    def send(self, numbers: Union[str, List[str]], text: str, brand_id: Optional[str] = None) -> Dict[str, Any]:
        numbers = [numbers] if isinstance(numbers, str) else list(numbers)
        try:
            response = self.http.post(
                f"{UBILL_BASE_URL}/sendXml",
                params={'key': self.config.api_key},
                data=self.build_request(brand_id or self.config.brand_id, numbers, text).encode('utf-8'),
                headers={'Content-Type': 'application/xml'},
                timeout=30,
            )
            parsed = self.parse_response(response.text)
        except requests.RequestException as e:
            logger.error(f"UBill API error: {e}")
            return {'success': False, 'provider': 'ubill', 'status_id': STATUS_ERROR, 'error': str(e)}

        if parsed['status_id'] != STATUS_SENT:
            logger.error(f"UBill SMS send failed: status={parsed['status_id']} message={parsed['message']}")
            return {
                'success': False,
                'provider': 'ubill',
                'status_id': parsed['status_id'],
                'message_id': parsed['sms_id'],
                'error': parsed['message'] or 'Failed to send SMS',
            }
        logger.info(f"UBill SMS {parsed['sms_id']} sent to {len(numbers)} number(s)")
        return {'success': True, 'provider': 'ubill', 'status_id': STATUS_SENT, 'message_id': parsed['sms_id']}

    def get_report(self, sms_id: str) -> Dict[str, Any]:
        try:
            response = self.http.get(
                f"{UBILL_BASE_URL}/report/{sms_id}",
                headers={'key': self.config.api_key, 'Content-Type': 'application/json'},
                timeout=30,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"UBill report API error: {e}")
            return {'success': False, 'provider': 'ubill', 'error': str(e)}
        return {
            'success': data.get('statusID') == STATUS_SENT,
            'provider': 'ubill',
            'results': [
                {'number': r.get('number'), 'status': map_ubill_status(r.get('statusID'))}
                for r in data.get('result') or []
            ],
        }

    def get_balance(self) -> Dict[str, Any]:
        try:
            response = self.http.get(f"{UBILL_BASE_URL}/balance", params={'key': self.config.api_key}, timeout=30)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"UBill balance API error: {e}")
            return {'success': False, 'provider': 'ubill', 'error': str(e)}
        return {'success': data.get('statusID') == STATUS_SENT, 'provider': 'ubill', 'balance': data.get('sms')}
