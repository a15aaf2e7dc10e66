# src/api/shop_base.py
import asyncio
import json
import re
from typing import Dict, Any, Optional, List
import aiohttp # type: ignore
from storesync.utils.constants import ErrorKind, ERROR_CODE_KINDS, ERROR_MESSAGE_KINDS
from storesync.utils.exceptions import (
    AuthError,
    ShopUnavailable,
)

OPERATION_PATTERN = re.compile(r'\b(?:query|mutation)\s+(\w+)')

def operation_name(descriptor: str) -> str:
    match = OPERATION_PATTERN.search(descriptor or '')
    return match.group(1) if match else 'anonymous'

def classify_errors(errors: Optional[List[Dict[str, Any]]]) -> ErrorKind:
    """
    Derive an ErrorKind from GraphQL errors. Structured extensions.code values win;
    message substrings are only consulted for errors that carry no code.
    """
    if not errors:
        return ErrorKind.UNKNOWN

    kinds = []
    for error in errors:
        if not isinstance(error, dict):
            continue
        code = (error.get('extensions') or {}).get('code')
        if code:
            kinds.append(ERROR_CODE_KINDS.get(str(code).upper(), ErrorKind.UNKNOWN))
            continue
        message = str(error.get('message', '')).lower()
        for needle, kind in ERROR_MESSAGE_KINDS:
            if needle in message:
                kinds.append(kind)
                break

    # Precedence: permission, validation, not_found, transient
    for kind in (ErrorKind.PERMISSION, ErrorKind.VALIDATION, ErrorKind.NOT_FOUND, ErrorKind.TRANSIENT):
        if kind in kinds:
            return kind
    return ErrorKind.UNKNOWN

class ShopBase:
    def __init__(
        self,
        domain: str,
        access_token: str,
        logger: 'CustomLogger', # type: ignore
        api_version: str = '2025-01',
        timeout: int = 30,
        rate_limit: float = 0.5
    ):
        """
        Low level GraphQL transport for one store

        Args:
            domain: store domain, e.g. example.myshopify.com
            access_token: Admin API access token
            rate_limit: minimum seconds between two requests
        """
        self.domain = domain
        self.endpoint = f"https://{domain}/admin/api/{api_version}/graphql.json"
        self.access_token = access_token
        self.logger = logger
        self.timeout = timeout
        self.rate_limit = rate_limit
        self.session: Optional[aiohttp.ClientSession] = None
        self.last_request_time = 0.0

    async def _ensure_session(self):
        """Ensure aiohttp session exists"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    'Content-Type': 'application/json',
                    'X-Shopify-Access-Token': self.access_token,
                }
            )

    async def _throttle(self):
        now = asyncio.get_running_loop().time()
        if now - self.last_request_time < self.rate_limit:
            await asyncio.sleep(self.rate_limit - (now - self.last_request_time))

    async def query(self, descriptor: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Post a GraphQL document and return {'data': ..., 'errors': [...]}.

        GraphQL errors are returned, not raised. Transport failures raise typed
        exceptions so callers can tell permission problems from transient ones.
        """
        await self._ensure_session()
        await self._throttle()

        name = operation_name(descriptor)
        payload = {'query': descriptor, 'variables': variables or {}}

        try:
            async with self.session.post(self.endpoint, json=payload) as response:
                self.last_request_time = asyncio.get_running_loop().time()
                body = await response.text()

                if response.status == 401:
                    raise AuthError(f"Invalid access token for {self.domain}", details=body[:500], status=401)
                if response.status == 403:
                    raise AuthError(f"Access denied on {self.domain} ({name})", details=body[:500], status=403)
                if response.status == 429:
                    raise ShopUnavailable(f"Rate limited by {self.domain} ({name})", status=429)
                if response.status >= 400:
                    raise ShopUnavailable(
                        f"HTTP {response.status} from {self.domain} ({name})",
                        details=body[:500],
                        status=response.status
                    )

                try:
                    data = json.loads(body)
                except json.JSONDecodeError as e:
                    raise ShopUnavailable(f"Invalid JSON response from {self.domain}: {str(e)}")

        except asyncio.TimeoutError:
            raise ShopUnavailable(f"Request to {self.domain} timed out ({name})")
        except aiohttp.ClientError as e:
            raise ShopUnavailable(f"Cannot reach {self.domain}: {str(e)}")

        return {
            'data': data.get('data'),
            'errors': data.get('errors') or [],
        }

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
