"""
Signature checks for the three ways shopify signs what it sends us.

All three share the app's api secret but canonicalize differently, so each
gets its own encoder:

request (oauth callback, embedded admin):
    drop "hmac", sort by key, urlencode joined with "&", hex digest.
app proxy (storefront):
    drop "signature", sort by key, "key=value" pairs joined with nothing, hex digest.
webhook:
    raw request body as is, base64 of the binary digest.
"""
import base64
import hashlib
import hmac
from urllib.parse import urlencode


REQUEST_SIGNATURE_PARAM = "hmac"


PROXY_SIGNATURE_PARAM = "signature"


WEBHOOK_SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"


def _param_items(params):
    """Accept a mapping, a multidict or an iterable of (key, value) pairs."""
    if hasattr(params, "items"):
        return list(params.items())
    return list(params)


def _signature_from(param_items, signature_param):
    for (k, v) in param_items:
        if k == signature_param:
            return v
    return None


def check_hmac_matches(our_hmac, hmac_to_check):
    if not hmac_to_check:
        return False
    if isinstance(our_hmac, str):
        our_hmac = our_hmac.encode("utf8")
    if isinstance(hmac_to_check, str):
        hmac_to_check = hmac_to_check.encode("utf8")
    return hmac.compare_digest(our_hmac, hmac_to_check)


def encode_params_for_hmac(param_items, signature_param=REQUEST_SIGNATURE_PARAM):
    params_to_encode = sorted(
        (k, v) for (k, v) in _param_items(param_items) if k != signature_param
    )
    return urlencode(params_to_encode)


def calculate_hmac(api_secret, param_items):
    encoded_params = encode_params_for_hmac(param_items)
    return hmac.new(
        api_secret.encode("utf8"), encoded_params.encode("utf8"), hashlib.sha256
    ).hexdigest()


def verify_request_hmac(params, api_secret):
    param_items = _param_items(params)
    return check_hmac_matches(
        calculate_hmac(api_secret, param_items),
        _signature_from(param_items, REQUEST_SIGNATURE_PARAM),
    )


def encode_params_for_proxy(param_items, signature_param=PROXY_SIGNATURE_PARAM):
    """
    Encode params with the app proxy rules.

    RULE #1: no separator between pairs and no url encoding.
    RULE #2: repeated keys are joined into one pair, values comma separated.
    """
    grouped = {}
    for (k, v) in _param_items(param_items):
        if k == signature_param:
            continue
        grouped.setdefault(k, []).append(v)
    return "".join(f"{k}={','.join(vs)}" for (k, vs) in sorted(grouped.items()))


def calculate_proxy_signature(api_secret, param_items):
    encoded_params = encode_params_for_proxy(param_items)
    return hmac.new(
        api_secret.encode("utf8"), encoded_params.encode("utf8"), hashlib.sha256
    ).hexdigest()


def verify_proxy_signature(params, api_secret):
    param_items = _param_items(params)
    return check_hmac_matches(
        calculate_proxy_signature(api_secret, param_items),
        _signature_from(param_items, PROXY_SIGNATURE_PARAM),
    )


def calculate_webhook_hmac(api_secret, body):
    if isinstance(body, str):
        body = body.encode("utf8")
    digest = hmac.new(api_secret.encode("utf8"), body, digestmod=hashlib.sha256).digest()
    return base64.b64encode(digest)


def verify_webhook_hmac(body, hmac_header, api_secret):
    """The header must be present, an absent header never passes."""
    if not hmac_header:
        return False
    return check_hmac_matches(calculate_webhook_hmac(api_secret, body), hmac_header)
