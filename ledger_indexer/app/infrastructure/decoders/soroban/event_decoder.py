from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from stellar_sdk import xdr as stellar_xdr

from ledger_indexer.app.domain.errors import EventDecodeError
from ledger_indexer.app.domain.models import KNOWN_EVENT_NAMES, ContractEvent
from ledger_indexer.app.domain.ports.out import ContractEventDecoder
from ledger_indexer.app.infrastructure.decoders.soroban.scval import scval_to_native

logger = logging.getLogger(__name__)

MetaParser = Callable[[str], Any]

_PAYLOAD_NAME_KEYS = ("eventName", "event", "type")
_EVENT_NAMES_BY_LOWER = {name.lower(): name for name in KNOWN_EVENT_NAMES}


class SorobanEventDecoder(ContractEventDecoder):
    """
    Decoder for Soroban contract events carried in `result_meta_xdr`.

    It:
    - parses the base64 TransactionMeta,
    - picks the diagnostic event list by meta version (v3: soroban meta, v4: top level),
    - converts each event's topics and data from SCVal into native values,
    - resolves the event name from topics, then from payload alias keys.

    Events with no recognized name are dropped, not reported.
    """

    def __init__(self, *, meta_parser: MetaParser | None = None) -> None:
        self._parse_meta = meta_parser or stellar_xdr.TransactionMeta.from_xdr

    def decode(self, result_meta_xdr: str | None) -> list[ContractEvent]:
        if not result_meta_xdr:
            return []

        try:
            meta = self._parse_meta(result_meta_xdr)
        except Exception as exc:
            raise EventDecodeError(f"Malformed transaction meta: {exc}") from exc

        events: list[ContractEvent] = []
        for diagnostic_event in self._diagnostic_events(meta):
            event = self._normalize_contract_event(getattr(diagnostic_event, "event", None))
            if event is not None:
                events.append(event)
        return events

    # ---------------------------------------------------------------------
    # Meta version selection
    # ---------------------------------------------------------------------

    def _diagnostic_events(self, meta: Any) -> Iterable[Any]:
        version = meta.v

        if version == 3:
            soroban_meta = meta.v3.soroban_meta if meta.v3 is not None else None
            if soroban_meta is None:
                return []
            return soroban_meta.diagnostic_events or []

        if version == 4:
            if meta.v4 is None:
                return []
            return meta.v4.diagnostic_events or []

        # v0-v2 predate Soroban and carry no contract events
        return []

    # ---------------------------------------------------------------------
    # Event normalization
    # ---------------------------------------------------------------------

    def _normalize_contract_event(self, contract_event: Any) -> ContractEvent | None:
        if contract_event is None:
            return None

        try:
            body_v0 = contract_event.body.v0
            if body_v0 is None:
                return None

            topics = [scval_to_native(topic) for topic in (body_v0.topics or [])]
            data = scval_to_native(body_v0.data) if body_v0.data is not None else None
        except (EventDecodeError, AttributeError, UnicodeDecodeError, ValueError) as exc:
            logger.warning("Dropping undecodable contract event: %s", exc)
            return None

        name = self._extract_event_name(topics, data)
        if name is None:
            return None

        payload = data if isinstance(data, dict) else {"value": data}
        return ContractEvent(name=name, payload=payload)

    @staticmethod
    def _extract_event_name(topics: list[Any], payload: Any) -> str | None:
        for topic in topics:
            name = _EVENT_NAMES_BY_LOWER.get(_as_lower_text(topic))
            if name is not None:
                return name

        if isinstance(payload, dict):
            candidate = None
            for key in _PAYLOAD_NAME_KEYS:
                if payload.get(key) is not None:
                    candidate = payload[key]
                    break
            return _EVENT_NAMES_BY_LOWER.get(_as_lower_text(candidate))

        return None


def _as_lower_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value).lower()
