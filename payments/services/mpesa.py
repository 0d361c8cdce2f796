import base64
import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache

import requests
from django.conf import settings
from requests.auth import HTTPBasicAuth
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..exceptions import AuthFailure, Rejected, TransientFailure
from ..utils import mpesa_timestamp
from .base import PaymentGateway, PushResult
from .token_cache import TokenCache

logger = logging.getLogger(__name__)

SANDBOX_URL = 'https://sandbox.safaricom.co.ke'
PRODUCTION_URL = 'https://api.safaricom.co.ke'


class MpesaDarajaClient(PaymentGateway):
    """
    Retry-aware wrapper around the Daraja OAuth, STK push and STK query APIs.

    The only state it keeps is the cached bearer token. Network errors,
    timeouts and 5xx responses raise ``TransientFailure`` and are retried
    with exponential backoff; 4xx responses and non-zero ``ResponseCode``
    values raise ``Rejected`` immediately.
    """

    def __init__(self, env, consumer_key, consumer_secret, shortcode, passkey, callback_url,
                 transaction_desc='Data Bundle Purchase', timeout=30, max_attempts=3, backoff_base=1.0,
                 session=None, token_cache=None, clock=None, sleep=time.sleep):
        self.env = env
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.transaction_desc = transaction_desc
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base

        self.base_url = SANDBOX_URL if env == 'sandbox' else PRODUCTION_URL
        self.session = session or requests.Session()
        self.token_cache = token_cache or TokenCache()
        self._clock = clock
        self._sleep = sleep

    def _retrying(self):
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, min=0, max=60),
            retry=retry_if_exception_type(TransientFailure),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _log_retry(self, retry_state):
        logger.warning(
            "M-Pesa call failed (attempt %s/%s): %s",
            retry_state.attempt_number, self.max_attempts, retry_state.outcome.exception(),
        )

    def _timestamp(self):
        return mpesa_timestamp(self._clock() if self._clock else None)

    def _password(self, timestamp):
        # Same second, same password: the API expects it derived this way.
        raw = f"{self.shortcode}{self.passkey}{timestamp}".encode('utf-8')
        return base64.b64encode(raw).decode('utf-8')

    def authenticate(self, force=False):
        if force:
            self.token_cache.clear()
        else:
            token = self.token_cache.get()
            if token:
                return token
        return self._retrying()(self._fetch_token)

    def _token(self, force=False):
        if force:
            self.token_cache.clear()
        return self.token_cache.get() or self._fetch_token()

    def _fetch_token(self):
        url = f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials"
        try:
            resp = self.session.get(
                url,
                auth=HTTPBasicAuth(self.consumer_key, self.consumer_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransientFailure(f"M-Pesa OAuth request failed: {e}") from e

        if resp.status_code >= 500:
            raise TransientFailure(f"M-Pesa OAuth error: status={resp.status_code}", code=resp.status_code)
        if resp.status_code != 200:
            raise AuthFailure(
                f"M-Pesa OAuth error: status={resp.status_code}, body={resp.text}", code=resp.status_code,
            )
        data = self._json(resp)
        token = data.get('access_token')
        if not token:
            raise AuthFailure(f"M-Pesa OAuth response missing access_token: {data}")

        self.token_cache.store(token, data.get('expires_in', 3599))
        logger.debug("M-Pesa access token obtained")
        return token

    @staticmethod
    def _json(resp):
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _send(self, path, payload, token):
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            return self.session.post(f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            # A timeout after sending is not proof the gateway dropped the request.
            raise TransientFailure(f"Failed to reach M-Pesa {path}: {e}") from e

    def _post_once(self, path, payload):
        resp = self._send(path, payload, self._token())
        if resp.status_code == 401:
            logger.info("M-Pesa rejected the cached token, re-authenticating")
            resp = self._send(path, payload, self._token(force=True))
            if resp.status_code == 401:
                raise AuthFailure("M-Pesa rejected a freshly issued token", code=401)

        body = self._json(resp)
        if resp.status_code >= 500:
            raise TransientFailure(
                f"M-Pesa {path} returned {resp.status_code}: {body.get('errorMessage') or resp.text}",
                code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise Rejected(body.get('errorCode') or str(resp.status_code), body.get('errorMessage') or resp.text)
        return body

    def _post(self, path, payload):
        return self._retrying()(self._post_once, path, payload)

    def push_payment(self, phone, amount, reference):
        timestamp = self._timestamp()
        payload = {
            "BusinessShortCode": int(self.shortcode),
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            # whole shillings only
            "Amount": int(Decimal(str(amount)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)),
            "PartyA": phone,
            "PartyB": int(self.shortcode),
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": reference,
            "TransactionDesc": self.transaction_desc,
        }
        logger.info("Initiating M-Pesa STK push: %s KES to %s, ref: %s", payload["Amount"], phone, reference)

        data = self._post('/mpesa/stkpush/v1/processrequest', payload)
        if str(data.get('ResponseCode')) != '0':
            raise Rejected(
                data.get('ResponseCode') or data.get('errorCode'),
                data.get('ResponseDescription') or data.get('errorMessage') or 'STK Push was not accepted',
            )
        return PushResult(
            accepted=True,
            gateway_ref=data.get('CheckoutRequestID'),
            merchant_request_id=data.get('MerchantRequestID'),
            description=data.get('ResponseDescription', ''),
            raw=data,
        )

    def query_push_status(self, gateway_ref):
        timestamp = self._timestamp()
        payload = {
            "BusinessShortCode": int(self.shortcode),
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": gateway_ref,
        }
        logger.info("Querying M-Pesa for STK status: %s", gateway_ref)
        return self._post('/mpesa/stkpushquery/v1/query', payload)


@lru_cache(maxsize=None)
def get_gateway_client():
    """Process-wide client, so every request shares one token cache."""
    return MpesaDarajaClient(
        env=settings.MPESA_ENV,
        consumer_key=settings.MPESA_CONSUMER_KEY,
        consumer_secret=settings.MPESA_CONSUMER_SECRET,
        shortcode=settings.MPESA_SHORTCODE,
        passkey=settings.MPESA_PASSKEY,
        callback_url=settings.MPESA_CALLBACK_URL,
        transaction_desc=settings.MPESA_TRANSACTION_DESC,
        timeout=settings.MPESA_TIMEOUT,
        max_attempts=settings.MPESA_MAX_ATTEMPTS,
        backoff_base=settings.MPESA_BACKOFF_BASE,
    )
