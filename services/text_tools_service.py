"""
TextToolsService - the dashboard's extraction and random string tools

Pulls server names, IPs, emails and domains out of pasted text, and
generates random strings / passwords.
"""

import logging
import re
import secrets
from typing import Any, Dict, List, Optional

from services.common.result import Result

logger = logging.getLogger(__name__)

EXTRACTION_PATTERNS = {
    'servers': re.compile(r'\b(?:sr|s)_[a-zA-Z0-9]{1,5}_[0-9]{1,4}\b'),
    'ips': re.compile(
        r'(?:25[0-5]|2[0-4]\d|[01]?\d?\d)\.(?:25[0-5]|2[0-4]\d|[01]?\d?\d)\.'
        r'(?:25[0-5]|2[0-4]\d|[01]?\d?\d)\.(?:25[0-5]|2[0-4]\d|[01]?\d?\d)'
    ),
    'emails': re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
    'domains': re.compile(r'(?:https?://)?(?:www\.)?[a-zA-Z0-9_.-]+\.[a-zA-Z]{2,}', re.IGNORECASE),
}

LOWERCASE = 'abcdefghijklmnopqrstuvwxyz'
UPPERCASE = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ'
DIGITS = '0123456789'
SYMBOLS = '!@#$%^&*()_-+=<>?'

MAX_STRING_LENGTH = 4096


class TextToolsService:
    """Regex extraction and random string generation"""

    def extract(self, text: str, extraction_type: str) -> Result[List[str]]:
        """
        Unique matches of one extraction type, in first-seen order.

        Args:
            text: Raw pasted text or HTML source
            extraction_type: servers, ips, emails or domains
        """
        pattern = EXTRACTION_PATTERNS.get(extraction_type)
        if pattern is None:
            return Result.failure(
                f"Unknown extraction type: {extraction_type}",
                code="INVALID_EXTRACTION_TYPE"
            )

        matches = list(dict.fromkeys(m.group(0) for m in pattern.finditer(text or '')))
        logger.debug(f"Extracted {len(matches)} {extraction_type}")
        return Result.success(matches, metadata={'type': extraction_type, 'count': len(matches)})

    def extract_all(self, text: str) -> Dict[str, List[str]]:
        return {name: self.extract(text, name).data for name in EXTRACTION_PATTERNS}

    def generate_string(self,
                        length: int = 16,
                        include_symbols: bool = False,
                        include_numbers: bool = False,
                        include_uppercase: bool = False,
                        word_entries: Optional[List[Dict[str, Any]]] = None) -> Result[Dict[str, Any]]:
        """
        Random string from the selected character classes.

        When word entries ({"word", "times"}) are given, the result is each
        word repeated `times` times, concatenated in order, instead.
        """
        if word_entries:
            try:
                repeats = [(str(entry['word']), int(entry['times'])) for entry in word_entries]
            except (KeyError, TypeError, ValueError) as e:
                return Result.failure(f"Invalid word entry: {e}", code="INVALID_WORD_ENTRY")

            total_length = sum(len(word) * times for word, times in repeats)
            if any(times < 0 for _, times in repeats) or total_length > MAX_STRING_LENGTH:
                return Result.failure(
                    f"Word entries must repeat 0 or more times and total at most {MAX_STRING_LENGTH} characters",
                    code="INVALID_LENGTH"
                )
            value = ''.join(word * times for word, times in repeats)
        else:
            if length < 0 or length > MAX_STRING_LENGTH:
                return Result.failure(
                    f"length must be between 0 and {MAX_STRING_LENGTH}",
                    code="INVALID_LENGTH"
                )

            chars = LOWERCASE
            if include_uppercase:
                chars += UPPERCASE
            if include_numbers:
                chars += DIGITS
            if include_symbols:
                chars += SYMBOLS
            value = ''.join(secrets.choice(chars) for _ in range(length))

        return Result.success({'value': value, 'strength': self.password_strength(value)})

    @staticmethod
    def password_strength(value: str) -> Optional[str]:
        """weak / medium / strong from length and character variety"""
        if not value:
            return None

        variety = sum([
            bool(re.search(r'[a-z]', value)),
            bool(re.search(r'[A-Z]', value)),
            bool(re.search(r'[0-9]', value)),
            bool(re.search(r'[^a-zA-Z0-9]', value)),
        ])

        if len(value) >= 12 and variety >= 3:
            return 'strong'
        if len(value) >= 8 and variety >= 2:
            return 'medium'
        return 'weak'
