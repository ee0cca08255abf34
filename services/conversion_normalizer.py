"""
Conversion Normalizer

Maps the raw conversion payloads of CX3ads and Everflow into ConversionRecord.
Pure functions, no I/O.

Both sources carry the deploy/mailer/entity ids inside one tracking string
(`subid_1` on CX3ads, `sub1` on Everflow), e.g. "54605_18399408_11_3082_82":
  token 1 -> deploy_id, token 3 -> mailer_id, token 4 -> entity_id
The `subid_3` / `sub3` field, when set, overrides the entity id.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from services.common.exceptions import MalformedPayloadError
from services.conversion_models import ConversionRecord
from utils.datetime_utils import parse_source_datetime, utc_from_timestamp

logger = logging.getLogger(__name__)

CX3ADS_SOURCE_NAME = 'CX3ads'
EVERFLOW_SOURCE_NAME = 'Everflow'

SUB_ID_DELIMITER = '_'
DEPLOY_ID_INDEX = 1
MAILER_ID_INDEX = 3
ENTITY_ID_INDEX = 4


def _token(tokens, index: int) -> str:
    return tokens[index] if len(tokens) > index else ''


def parse_sub_ids(sub1: Optional[str], override: Optional[str] = None) -> Tuple[str, str, str]:
    """
    Split a compound tracking string into (deploy_id, mailer_id, entity_id).

    Missing tokens come back as empty strings, this never raises.

    Example:
        >>> parse_sub_ids("54605_18399408_11_3082_82")
        ('18399408', '3082', '82')
    """
    tokens = str(sub1).split(SUB_ID_DELIMITER) if sub1 else []

    deploy_id = _token(tokens, DEPLOY_ID_INDEX)
    mailer_id = _token(tokens, MAILER_ID_INDEX)
    entity_id = str(override) if override else _token(tokens, ENTITY_ID_INDEX)

    return deploy_id, mailer_id, entity_id


def _conversion_id(raw: Dict[str, Any], source: str) -> int:
    if not isinstance(raw, dict):
        raise MalformedPayloadError(source, f"Expected a conversion object, got {type(raw).__name__}")

    value = raw.get('conversion_id')
    if value is None or value == '':
        raise MalformedPayloadError(source, "Conversion is missing conversion_id")

    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedPayloadError(source, f"Invalid conversion_id: {value!r}")


def _price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    return price if price > 0 else 0.0


def _text(value: Any) -> str:
    return '' if value is None else str(value)


def _nested_object(parent: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = parent.get(key)
    if value is None or value == '':
        return {}
    if not isinstance(value, dict):
        raise MalformedPayloadError(
            EVERFLOW_SOURCE_NAME, f"Expected {key} to be an object, got {type(value).__name__}"
        )
    return value


def normalize_cx3ads_record(raw: Dict[str, Any], source_timezone: str = 'UTC') -> ConversionRecord:
    """
    Normalize one row of the CX3ads Reports/Conversions payload.

    CX3ads exposes flat fields and a naive local date string, read in
    `source_timezone`.
    """
    conversion_id = _conversion_id(raw, CX3ADS_SOURCE_NAME)
    deploy_id, mailer_id, entity_id = parse_sub_ids(raw.get('subid_1'), raw.get('subid_3'))

    timestamp = parse_source_datetime(raw.get('conversion_date'), source_timezone)
    if timestamp is None and raw.get('conversion_date'):
        logger.warning("Unparseable CX3ads conversion_date", extra={
            "conversion_id": conversion_id,
            "conversion_date": raw.get('conversion_date')
        })

    return ConversionRecord(
        id=conversion_id,
        timestamp=timestamp,
        offer_id=_text(raw.get('offer_id')),
        offer_name=_text(raw.get('offer_name')),
        deploy_id=deploy_id,
        mailer_id=mailer_id,
        entity_id=entity_id,
        price=_price(raw.get('price')),
        source_name=CX3ADS_SOURCE_NAME,
    )


def normalize_everflow_record(raw: Dict[str, Any]) -> ConversionRecord:
    """
    Normalize one conversion of the Everflow affiliate reporting payload.

    Everflow nests the offer under relationship.offer and sends the time as a
    Unix timestamp in seconds.
    """
    conversion_id = _conversion_id(raw, EVERFLOW_SOURCE_NAME)
    offer = _nested_object(_nested_object(raw, 'relationship'), 'offer')
    deploy_id, mailer_id, entity_id = parse_sub_ids(raw.get('sub1'), raw.get('sub3'))

    timestamp = None
    unix_timestamp = raw.get('conversion_unix_timestamp')
    if unix_timestamp not in (None, ''):
        try:
            timestamp = utc_from_timestamp(unix_timestamp)
        except (TypeError, ValueError, OverflowError, OSError):
            logger.warning("Unparseable Everflow conversion_unix_timestamp", extra={
                "conversion_id": conversion_id,
                "conversion_unix_timestamp": unix_timestamp
            })

    return ConversionRecord(
        id=conversion_id,
        timestamp=timestamp,
        offer_id=_text(offer.get('network_offer_id')),
        offer_name=_text(offer.get('name')),
        deploy_id=deploy_id,
        mailer_id=mailer_id,
        entity_id=entity_id,
        price=_price(raw.get('payout')),
        source_name=EVERFLOW_SOURCE_NAME,
    )
