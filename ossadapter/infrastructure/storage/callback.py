"""
Upload callback verification.

After a browser upload completes, OSS POSTs the callback body to the
application and signs the request with its own RSA key:

- ``x-oss-pub-key-url``: base64 of the URL of the public key
- ``authorization``: base64 of the RSA signature (PKCS#1 v1.5, MD5)

The signed string is the url-decoded request path (plus ``?query`` when
present), a newline, then the raw body.
"""

import base64
import binascii
import logging
from typing import Mapping, Optional
from urllib.parse import parse_qsl, unquote

import httpx
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)


PUBLIC_KEY_URL_PREFIXES = (
    "http://gosspublic.alicdn.com/",
    "https://gosspublic.alicdn.com/",
)
PUB_KEY_URL_HEADER = "x-oss-pub-key-url"
AUTHORIZATION_HEADER = "authorization"
DEFAULT_KEY_TIMEOUT = 5.0


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


class CallbackVerifier:
    """
    Verifies OSS upload callbacks.

    Public keys are fetched once per URL and cached for the lifetime of
    the verifier. Pass an ``httpx.Client`` to control transport (tests
    use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_KEY_TIMEOUT,
    ) -> None:
        self._http = http_client or httpx.Client(timeout=timeout)
        self._keys: dict[str, rsa.RSAPublicKey] = {}

    def _public_key(self, url: str) -> rsa.RSAPublicKey:
        key = self._keys.get(url)
        if key is not None:
            return key

        response = self._http.get(url)
        response.raise_for_status()
        loaded = serialization.load_pem_public_key(response.content)
        if not isinstance(loaded, rsa.RSAPublicKey):
            raise ValueError(f"public key at {url} is not an RSA key")

        self._keys[url] = loaded
        logger.info("Cached callback public key", extra={"url": url})
        return loaded

    def verify(
        self,
        authorization: Optional[str],
        pub_key_url: Optional[str],
        path: str,
        body: bytes | str,
        query: str = "",
    ) -> tuple[bool, dict[str, str]]:
        """
        Check a callback signature.

        Args:
            authorization: Value of the ``authorization`` header
            pub_key_url: Value of the ``x-oss-pub-key-url`` header
            path: Request path as received (may be percent-encoded)
            body: Raw request body
            query: Raw query string, without the ``?``

        Returns:
            ``(True, form fields of the body)`` or ``(False, {})``
        """
        if not authorization or not pub_key_url:
            logger.warning("Callback rejected: missing signature headers")
            return False, {}

        try:
            signature = _b64decode(authorization)
            key_url = _b64decode(pub_key_url).decode("utf-8")
        except (binascii.Error, ValueError):
            logger.warning("Callback rejected: headers are not valid base64")
            return False, {}

        if not key_url.startswith(PUBLIC_KEY_URL_PREFIXES):
            logger.warning("Callback rejected: untrusted public key url", extra={"url": key_url})
            return False, {}

        try:
            public_key = self._public_key(key_url)
        except httpx.HTTPError as e:
            logger.error("Failed to fetch callback public key", extra={"url": key_url, "error": str(e)})
            return False, {}
        except (ValueError, UnsupportedAlgorithm) as e:
            logger.error("Invalid callback public key", extra={"url": key_url, "error": str(e)})
            return False, {}

        raw_body = body.encode("utf-8") if isinstance(body, str) else body
        signed = unquote(path)
        if query:
            signed = f"{signed}?{query}"
        message = signed.encode("utf-8") + b"\n" + raw_body

        try:
            public_key.verify(signature, message, padding.PKCS1v15(), hashes.MD5())
        except InvalidSignature:
            logger.warning("Callback rejected: signature mismatch", extra={"path": path})
            return False, {}

        data = dict(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
        logger.info("Verified upload callback", extra={"path": path, "fields": len(data)})
        return True, data

    def verify_request(
        self,
        headers: Mapping[str, str],
        path: str,
        body: bytes | str,
        query: str = "",
    ) -> tuple[bool, dict[str, str]]:
        """Verify using a (case-insensitive) header mapping."""
        lowered = {name.lower(): value for name, value in headers.items()}
        return self.verify(
            lowered.get(AUTHORIZATION_HEADER),
            lowered.get(PUB_KEY_URL_HEADER),
            path,
            body,
            query,
        )

    def close(self) -> None:
        self._http.close()
