"""
DetailsService - the send details block copied into deploy notes
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.common.result import Result

logger = logging.getLogger(__name__)

SEND_TYPES = ('DKIM', 'SPF', 'DMARC', 'NEUTRAL')
DEFAULT_SEND_TYPES = ('SPF',)

DETAILS_RULE = '*' * 46

DETAILS_TEMPLATE = (
    "{rule}\n"
    "  {input_field}\n"
    "{rule}\n"
    "Send Type : {send_types}\n"
    "Test After : {test_after}% INBOX\n"
    "Data/Seeds : {data_seeds}% {seeds_label}\n"
    "Return Path: {return_path}\n"
    "From Path: {from_path}\n"
    "Deploy ID : {deploy_id}\n"
    "Offer : {offer}"
)


@dataclass(frozen=True)
class SendDetails:
    input_field: str = ''
    send_types: List[str] = field(default_factory=lambda: list(DEFAULT_SEND_TYPES))
    test_after: int = 100
    data_seeds: int = 100
    is_seeds: bool = True
    return_path: str = ''
    from_path: str = ''
    deploy_id: str = ''
    offer: str = ''

    def __post_init__(self):
        unknown = [t for t in self.send_types if t not in SEND_TYPES]
        if unknown:
            raise ValueError(f"Unknown send type(s): {', '.join(unknown)}")
        for name in ('test_after', 'data_seeds'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
                raise ValueError(f"{name} must be a percentage between 0 and 100")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SendDetails':
        """
        Build from a request body. Missing keys take the defaults.

        Raises:
            ValueError: Unknown send type or percentage out of range
        """
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        for name in ('input_field', 'return_path', 'from_path', 'deploy_id', 'offer'):
            if name in known:
                known[name] = '' if known[name] is None else str(known[name])
        if 'send_types' in known:
            if not isinstance(known['send_types'], (list, tuple)):
                raise ValueError("send_types must be a list")
            known['send_types'] = [str(t) for t in known['send_types']]
        for name in ('test_after', 'data_seeds'):
            if name in known and not isinstance(known[name], bool):
                known[name] = int(known[name])
        if 'is_seeds' in known:
            known['is_seeds'] = bool(known['is_seeds'])
        return cls(**known)


def toggle_send_type(send_types: List[str], send_type: str) -> List[str]:
    """Remove `send_type` if selected, otherwise append it. Returns a new list."""
    if send_type not in SEND_TYPES:
        raise ValueError(f"Unknown send type: {send_type}")
    if send_type in send_types:
        return [t for t in send_types if t != send_type]
    return list(send_types) + [send_type]


def format_details(details: SendDetails) -> str:
    return DETAILS_TEMPLATE.format(
        rule=DETAILS_RULE,
        input_field=details.input_field,
        send_types=', '.join(details.send_types),
        test_after=details.test_after,
        data_seeds=details.data_seeds,
        seeds_label='SEEDS' if details.is_seeds else 'DATA',
        return_path=details.return_path,
        from_path=details.from_path,
        deploy_id=details.deploy_id,
        offer=details.offer,
    )


class DetailsService:
    """Formats send details and toggles the selected send types"""

    def format(self, data: Optional[Dict[str, Any]]) -> Result[str]:
        try:
            details = SendDetails.from_dict(data or {})
        except (TypeError, ValueError) as e:
            return Result.failure(str(e), code="INVALID_DETAILS")

        logger.debug("Formatted send details", extra={"deploy_id": details.deploy_id})
        return Result.success(format_details(details))

    def toggle_send_type(self, send_types: Optional[List[str]], send_type: str) -> Result[List[str]]:
        current = list(DEFAULT_SEND_TYPES) if send_types is None else list(send_types)
        try:
            return Result.success(toggle_send_type(current, send_type))
        except ValueError as e:
            return Result.failure(str(e), code="INVALID_SEND_TYPE")
