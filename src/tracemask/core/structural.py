"""
Structural masking for JSON-like data.

Walks maps, lists and scalars and replaces every value that is not exempt by
the redaction marker. Used for request/response bodies, GraphQL variables and
(as a flat map) headers.
"""

import json
from collections.abc import Mapping
from typing import Any, Dict, FrozenSet, Iterable, Optional

import structlog

from .policy import MASK, MaskingPolicy, PrivacyLevel

logger = structlog.get_logger(__name__)

MASKED_BODY = MASK.encode("utf-8")


def mask_structure(value: Any, exempt_keys: Iterable[str] = frozenset(), max_depth: int = 64) -> Any:
    """
    Return a masked copy of a JSON-like value.

    Args:
        value: Map, list or scalar to mask
        exempt_keys: Lower-cased map keys whose values pass through untouched
        max_depth: Containers nested deeper than this are masked as a whole

    Returns:
        A new value sharing no containers with the input
    """
    keys = exempt_keys if isinstance(exempt_keys, frozenset) else frozenset(exempt_keys)
    return _mask_node(value, keys, max_depth, 0)


def _mask_node(value: Any, exempt_keys: FrozenSet[str], max_depth: int, depth: int) -> Any:
    if isinstance(value, Mapping):
        if depth >= max_depth:
            return MASK
        masked: Dict[str, Any] = {}
        for key, item in value.items():
            name = str(key)
            if name.lower() in exempt_keys:
                masked[name] = copy_tree(item)
            else:
                masked[name] = _mask_node(item, exempt_keys, max_depth, depth + 1)
        return masked

    if isinstance(value, (list, tuple)):
        if depth >= max_depth:
            return MASK
        return [_mask_node(item, exempt_keys, max_depth, depth + 1) for item in value]

    # Scalars, None included
    return MASK


def copy_tree(value: Any) -> Any:
    """
    Copy a JSON-like value without recursion.

    Exempt subtrees are copied verbatim however deeply they nest, so the walk
    keeps its own stack instead of relying on ``copy.deepcopy``. Tuples come
    back as lists.
    """
    if not isinstance(value, (Mapping, list, tuple)):
        return value

    root: Any = {} if isinstance(value, Mapping) else []
    stack = [(value, root)]
    while stack:
        source, target = stack.pop()
        items = source.items() if isinstance(source, Mapping) else enumerate(source)
        for key, item in items:
            if isinstance(item, Mapping):
                child: Any = {}
                stack.append((item, child))
            elif isinstance(item, (list, tuple)):
                child = []
                stack.append((item, child))
            else:
                child = item
            if isinstance(target, dict):
                target[key] = child
            else:
                target.append(child)
    return root


def mask_body(body: Optional[bytes], policy: MaskingPolicy) -> Optional[bytes]:
    """
    Mask a raw body according to the policy.

    RESTRICTED bodies must be JSON documents with a map or list at the top;
    anything else is replaced by the bare marker so no raw bytes leak.
    """
    if body is None:
        return None

    if policy.level is PrivacyLevel.OPEN:
        return body
    if policy.level is PrivacyLevel.LOCKED:
        return None

    try:
        document = json.loads(body)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        logger.debug("Body is not JSON, masking whole payload", error_type=type(e).__name__, size_bytes=len(body))
        return MASKED_BODY

    if not isinstance(document, (dict, list)):
        logger.debug("Body is a bare JSON scalar, masking whole payload", size_bytes=len(body))
        return MASKED_BODY

    masked = mask_structure(document, policy.body_exempt_keys, policy.max_depth)
    try:
        return json.dumps(masked, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except RecursionError:
        logger.debug("Masked body too deep to serialize, masking whole payload", size_bytes=len(body))
        return MASKED_BODY


def mask_variables(variables: Optional[Dict[str, Any]], policy: MaskingPolicy) -> Optional[Dict[str, Any]]:
    """Mask GraphQL variables, which are already structured (no parse step)."""
    if variables is None:
        return None

    if policy.level is PrivacyLevel.OPEN:
        return copy_tree(variables)
    if policy.level is PrivacyLevel.LOCKED:
        return None

    masked: Dict[str, Any] = mask_structure(variables, policy.body_exempt_keys, policy.max_depth)
    return masked


def mask_headers(headers: Optional[Dict[str, str]], policy: MaskingPolicy) -> Optional[Dict[str, str]]:
    """Mask a flat header map. Header names are kept, values are masked."""
    if headers is None:
        return None

    if policy.level is PrivacyLevel.OPEN:
        return dict(headers)

    return {
        key: value if policy.is_header_exempt(key) else MASK
        for key, value in headers.items()
    }
