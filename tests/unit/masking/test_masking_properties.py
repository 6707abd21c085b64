"""
Property tests for the masking engine.

Checks that no literal value survives masking, that information loss grows
monotonically with the privacy level, and that hostile payloads are handled
like any other value.
"""

import json
from typing import List, Optional
from urllib.parse import quote

import pytest

from tracemask.core.assembler import EventMasker
from tracemask.core.policy import MASK, MaskingPolicy, PrivacyLevel
from tracemask.models.event import MaskedEvent, NetworkEvent, RequestType

PAYLOADS = [
    "correct-horse-battery-staple",
    "x" * 10_000,
    "пароль-секрет-🔐-密码",
    "' OR 1=1; DROP TABLE users; --",
    "<script>alert('xss')</script>",
    "../../../../etc/passwd",
    "line1\nline2\ttab",
    'quote " and backslash \\ inside',
]


def build_event(payload: str) -> NetworkEvent:
    """Put the payload in every field a masker is responsible for."""
    return NetworkEvent(
        type=RequestType(method="POST", url=f"https://api.example.com/graphql?secret={quote(payload)}"),
        headers={"X-Secret": payload},
        body=json.dumps({"secret": payload, "nested": [{"deeper": payload}]}).encode("utf-8"),
        operation_name="Leak",
        query=f"mutation Leak {{ store(value: {json.dumps(payload)}) {{ ok }} }}",
        variables={"secret": payload, "list": [payload, {"again": payload}]},
    )


def payload_forms(payload: str) -> List[str]:
    return [payload, quote(payload), json.dumps(payload)[1:-1]]


def field_texts(masked: MaskedEvent) -> List[str]:
    texts = [masked.url]
    if masked.headers:
        texts.extend(masked.headers.values())
    if masked.body is not None:
        texts.append(masked.body.decode("utf-8"))
    if masked.query is not None:
        texts.append(masked.query)
    if masked.variables is not None:
        texts.append(json.dumps(masked.variables, ensure_ascii=False))
    return texts


def information(masked: MaskedEvent) -> int:
    """Count unmasked leaf values and present payload fields."""
    def leaves(value) -> int:
        if isinstance(value, dict):
            return sum(leaves(item) for item in value.values())
        if isinstance(value, list):
            return sum(leaves(item) for item in value)
        return 0 if value == MASK else 1

    count = 0
    if masked.headers:
        count += leaves(masked.headers)
    if masked.body is not None:
        count += 1 + leaves(json.loads(masked.body))
    if masked.variables is not None:
        count += 1 + leaves(masked.variables)
    if masked.query is not None:
        count += 1
    if "?" in masked.url:
        count += 1 + masked.url.count("&") - masked.url.count(f"={MASK}")
    return count


class TestIrreversibility:
    """No raw value may appear in any masked field."""

    @pytest.mark.parametrize("payload", PAYLOADS)
    @pytest.mark.parametrize("level", [PrivacyLevel.RESTRICTED, PrivacyLevel.LOCKED])
    def test_payload_never_survives(self, payload: str, level: PrivacyLevel) -> None:
        masked = EventMasker(MaskingPolicy(level=level)).mask_event(build_event(payload))

        for text in field_texts(masked):
            for form in payload_forms(payload):
                assert form not in text

    @pytest.mark.parametrize("payload", PAYLOADS)
    def test_serialized_event_free_of_payload(self, payload: str) -> None:
        masked = EventMasker(MaskingPolicy(level=PrivacyLevel.RESTRICTED)).mask_event(build_event(payload))
        dumped = masked.model_dump_json()

        assert payload not in dumped
        assert json.dumps(payload)[1:-1] not in dumped

    def test_marker_is_the_literal_three_asterisks(self) -> None:
        masked = EventMasker(MaskingPolicy(level=PrivacyLevel.RESTRICTED)).mask_event(build_event("v"))

        assert masked.headers == {"X-Secret": "***"}
        assert masked.url.endswith("?secret=***")
        assert masked.variables["secret"] == "***"
        assert 'store(value: "***")' in masked.query


class TestLevelOrdering:
    """Information never increases as the level goes up."""

    @pytest.mark.parametrize("payload", ["v", "другое"])
    def test_monotonic_information_loss(self, payload: str) -> None:
        event = build_event(payload)
        exemptions = dict(
            unmasked_header_keys={"x-secret"},
            unmasked_query_param_keys={"secret"},
            unmasked_body_field_keys={"secret"},
        )

        def info(level: PrivacyLevel) -> int:
            return information(EventMasker(MaskingPolicy(level=level, **exemptions)).mask_event(event))

        assert info(PrivacyLevel.OPEN) > info(PrivacyLevel.RESTRICTED) > info(PrivacyLevel.LOCKED)

    def test_locked_reveals_nothing_restricted_hides(self) -> None:
        event = build_event("v")
        restricted = EventMasker(MaskingPolicy(level=PrivacyLevel.RESTRICTED)).mask_event(event)
        locked = EventMasker(MaskingPolicy(level=PrivacyLevel.LOCKED)).mask_event(event)

        assert information(restricted) >= information(locked)
        assert locked.body is None and locked.variables is None and locked.query is None


class TestHostileStructures:
    """Odd but valid inputs still mask cleanly."""

    @pytest.mark.parametrize("key", ["__proto__", "", "a.b[0]", "$where", "🔑"])
    def test_unusual_keys_kept_values_masked(self, key: str) -> None:
        policy = MaskingPolicy(level=PrivacyLevel.RESTRICTED)
        event = NetworkEvent(
            type=RequestType(method="POST", url="https://x.test/"),
            body=json.dumps({key: "secret"}).encode("utf-8"),
        )
        masked = EventMasker(policy).mask_event(event)
        assert json.loads(masked.body) == {key: MASK}

    def test_deeply_nested_body_does_not_raise(self) -> None:
        depth = 10_000
        body = ("[" * depth + "]" * depth).encode("utf-8")
        event = NetworkEvent(type=RequestType(method="POST", url="https://x.test/"), body=body)

        masked: Optional[MaskedEvent] = EventMasker(MaskingPolicy(level=PrivacyLevel.RESTRICTED)).mask_event(event)

        assert masked is not None
        assert masked.body is not None
