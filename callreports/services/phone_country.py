"""
Dialed-country classification for phone numbers.

Tenants mostly dial UAE, India, UK and Egypt numbers in local or partially
stripped formats that a strict E.164 parser rejects, so a prefix / length /
leading-digit heuristic runs first and `phonenumbers` only handles what the
heuristic cannot place.

Numbers of four digits or fewer are internal extensions and never get a
country.
"""

import logging
import re
from typing import Any, Dict, Optional

import phonenumbers
from phonenumbers import NumberParseException

logger = logging.getLogger(__name__)

EXTENSION_MAX_DIGITS = 4

_NON_DIALABLE = re.compile(r'[^\d+]')

COUNTRY_NAMES: Dict[str, str] = {
    'AE': 'UAE',
    'IN': 'India',
    'GB': 'United Kingdom',
    'US': 'United States',
    'CA': 'Canada',
    'AU': 'Australia',
    'DE': 'Germany',
    'FR': 'France',
    'IT': 'Italy',
    'ES': 'Spain',
    'NL': 'Netherlands',
    'BE': 'Belgium',
    'CH': 'Switzerland',
    'AT': 'Austria',
    'SE': 'Sweden',
    'NO': 'Norway',
    'DK': 'Denmark',
    'FI': 'Finland',
    'PL': 'Poland',
    'CZ': 'Czech Republic',
    'HU': 'Hungary',
    'RO': 'Romania',
    'BG': 'Bulgaria',
    'HR': 'Croatia',
    'SI': 'Slovenia',
    'SK': 'Slovakia',
    'LT': 'Lithuania',
    'LV': 'Latvia',
    'EE': 'Estonia',
    'IE': 'Ireland',
    'PT': 'Portugal',
    'GR': 'Greece',
    'CY': 'Cyprus',
    'MT': 'Malta',
    'LU': 'Luxembourg',
    'BR': 'Brazil',
    'MX': 'Mexico',
    'AR': 'Argentina',
    'CL': 'Chile',
    'CO': 'Colombia',
    'PE': 'Peru',
    'VE': 'Venezuela',
    'UY': 'Uruguay',
    'PY': 'Paraguay',
    'BO': 'Bolivia',
    'EC': 'Ecuador',
    'CN': 'China',
    'JP': 'Japan',
    'KR': 'South Korea',
    'TH': 'Thailand',
    'VN': 'Vietnam',
    'MY': 'Malaysia',
    'SG': 'Singapore',
    'ID': 'Indonesia',
    'PH': 'Philippines',
    'TW': 'Taiwan',
    'HK': 'Hong Kong',
    'MO': 'Macau',
    'RU': 'Russia',
    'UA': 'Ukraine',
    'BY': 'Belarus',
    'KZ': 'Kazakhstan',
    'UZ': 'Uzbekistan',
    'KG': 'Kyrgyzstan',
    'TJ': 'Tajikistan',
    'TM': 'Turkmenistan',
    'AM': 'Armenia',
    'AZ': 'Azerbaijan',
    'GE': 'Georgia',
    'MD': 'Moldova',
    'EG': 'Egypt',
    'SA': 'Saudi Arabia',
    'TR': 'Turkey',
    'IL': 'Israel',
    'JO': 'Jordan',
    'LB': 'Lebanon',
    'SY': 'Syria',
    'IQ': 'Iraq',
    'IR': 'Iran',
    'AF': 'Afghanistan',
    'PK': 'Pakistan',
    'BD': 'Bangladesh',
    'LK': 'Sri Lanka',
    'NP': 'Nepal',
    'BT': 'Bhutan',
    'MV': 'Maldives',
    'ZA': 'South Africa',
    'NG': 'Nigeria',
    'KE': 'Kenya',
    'GH': 'Ghana',
    'ET': 'Ethiopia',
    'TZ': 'Tanzania',
    'UG': 'Uganda',
    'ZW': 'Zimbabwe',
    'ZM': 'Zambia',
    'MW': 'Malawi',
    'MZ': 'Mozambique',
    'BW': 'Botswana',
    'NA': 'Namibia',
    'SZ': 'Eswatini',
    'LS': 'Lesotho',
}


def clean_number(raw: str) -> str:
    """Drop everything but digits and '+', then strip leading zeros of local numbers."""
    cleaned = _NON_DIALABLE.sub('', raw)
    if not cleaned.startswith('+'):
        cleaned = cleaned.lstrip('0')
    return cleaned


def _classify_by_pattern(number: str) -> Optional[str]:
    """
    Heuristic classification of a cleaned number.

    Returns:
        Country name, or None when no pattern applies.
    """
    length = len(number)
    first = number[:1]

    if number.startswith(('+971', '971')):
        return 'UAE'
    if number.startswith(('+20', '20')):
        return 'Egypt'

    # Indian mobiles: 10 digits starting 6-9
    if length == 10 and first in ('6', '7', '8', '9'):
        return 'India'

    # UAE mobiles after the trunk zero (and sometimes part of the prefix)
    # was dropped: 5XXXXXXXX, 5XXXXXXX, 5XXXXXX, and 10-digit 5XXXXXXXXX
    if length in (7, 8, 9, 10) and first == '5':
        return 'UAE'

    # UAE landlines
    if length == 8 and first in ('2', '3', '4', '6', '7'):
        return 'UAE'

    if length in (10, 11) and first == '1':
        return 'UK'
    if number.startswith('44') and length >= 10:
        return 'UK'

    return None


def _classify_by_parser(number: str) -> str:
    """Full international parse for numbers the heuristic did not place."""
    if not number.startswith('+') and len(number) > 10:
        number = '+' + number

    try:
        parsed = phonenumbers.parse(number, None)
    except NumberParseException as e:
        logger.debug(f"Failed to parse phone number {number}: {e}")
        return ''

    region = phonenumbers.region_code_for_number(parsed)
    if not region:
        return ''
    return COUNTRY_NAMES.get(region, region)


def extract_country(phone_number: Any) -> str:
    """
    Classify the country of a dialed phone number.

    Args:
        phone_number: Raw number as delivered upstream; non-strings yield ''.

    Returns:
        Country name, or '' for extensions and numbers that cannot be placed.

    Example:
        >>> extract_country('0568334181')
        'UAE'
        >>> extract_country('1234')
        ''
    """
    if not phone_number or not isinstance(phone_number, str):
        return ''

    number = clean_number(phone_number)
    if len(number) <= EXTENSION_MAX_DIGITS:
        return ''

    return _classify_by_pattern(number) or _classify_by_parser(number)
