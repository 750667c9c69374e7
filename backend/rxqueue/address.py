"""
地址解析 / 修复。

上游 intake（Airtable、Heyflow、各品牌 webhook）给的地址格式五花八门，
常见脏数据：
  - address1 里是整串 "201 ELBRIDGE AVE, APT F, Cloverdale, California, 95425"
  - zip 字段里是州名（zip="Texas"），原来的 state 字段其实是城市缩写（state="HO"）
  - city 字段里是公寓号（city="130" / "APT F"）
  - state 字段里是邮编（state="95425"）

这里的函数都是纯函数（输入字符串 → Address），不碰数据库；
只有 reconcile_patient_address() 会把修复结果写回 Patient。
"""

import json
import logging
import re
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)


STATE_NAME_TO_CODE = {
    'alabama': 'AL', 'alaska': 'AK', 'arizona': 'AZ', 'arkansas': 'AR',
    'california': 'CA', 'colorado': 'CO', 'connecticut': 'CT', 'delaware': 'DE',
    'florida': 'FL', 'georgia': 'GA', 'hawaii': 'HI', 'idaho': 'ID',
    'illinois': 'IL', 'indiana': 'IN', 'iowa': 'IA', 'kansas': 'KS',
    'kentucky': 'KY', 'louisiana': 'LA', 'maine': 'ME', 'maryland': 'MD',
    'massachusetts': 'MA', 'michigan': 'MI', 'minnesota': 'MN', 'mississippi': 'MS',
    'missouri': 'MO', 'montana': 'MT', 'nebraska': 'NE', 'nevada': 'NV',
    'new hampshire': 'NH', 'new jersey': 'NJ', 'new mexico': 'NM', 'new york': 'NY',
    'north carolina': 'NC', 'north dakota': 'ND', 'ohio': 'OH', 'oklahoma': 'OK',
    'oregon': 'OR', 'pennsylvania': 'PA', 'rhode island': 'RI', 'south carolina': 'SC',
    'south dakota': 'SD', 'tennessee': 'TN', 'texas': 'TX', 'utah': 'UT',
    'vermont': 'VT', 'virginia': 'VA', 'washington': 'WA', 'west virginia': 'WV',
    'wisconsin': 'WI', 'wyoming': 'WY', 'district of columbia': 'DC',
    'puerto rico': 'PR', 'virgin islands': 'VI', 'guam': 'GU',
}
VALID_STATE_CODES = frozenset(STATE_NAME_TO_CODE.values())

# 州名 + 州代码，长的优先（"west virginia" 必须先于 "virginia" 匹配）
_STATE_TOKENS = sorted(
    list(STATE_NAME_TO_CODE.items()) + [(code.lower(), code) for code in VALID_STATE_CODES],
    key=lambda item: len(item[0]),
    reverse=True,
)

_APT_PREFIX_RE = re.compile(
    r'^(?:#|(?:APT|APARTMENT|UNIT|STE|SUITE|BLDG|BUILDING|FLOOR|FL|RM|ROOM)\b\.?)\s*',
    re.IGNORECASE,
)
_BARE_APT_RE = re.compile(r'^\d{1,5}[A-Za-z]?$')
_ZIP_RE = re.compile(r'^\d{5}(-\d{4})?$')
_STATE_ZIP_RE = re.compile(r'^(.+?)\s+(\d{5}(?:-\d{4})?)$')
_ZIP_SEARCH_RE = re.compile(r'(\d{5})(?:-?(\d{4}))?')
_PO_BOX_RE = re.compile(r'\bP\.?\s*O\.?\s*BOX\b', re.IGNORECASE)


@dataclass
class Address:
    address1: str = ''
    address2: str = ''
    city: str = ''
    state: str = ''
    zip: str = ''
    country: str = 'US'

    def as_dict(self) -> dict:
        return asdict(self)


# ── 判定 ────────────────────────────────────────────────────────────────────

def is_apartment_string(value: str) -> bool:
    """APT 4B / Suite 200 / #5，或者裸的 "130" / "4B" 都算公寓号。"""
    trimmed = (value or '').strip()
    if not trimmed:
        return False
    return bool(_APT_PREFIX_RE.match(trimmed) or _BARE_APT_RE.match(trimmed))


def is_state_name(value: str) -> bool:
    normalized = (value or '').strip().lower()
    if not normalized:
        return False
    return normalized in STATE_NAME_TO_CODE or normalized.upper() in VALID_STATE_CODES


def is_zip_code(value: str) -> bool:
    return bool(_ZIP_RE.match((value or '').strip()))


# ── 规范化 ──────────────────────────────────────────────────────────────────

def normalize_state(value: str) -> str:
    """州名 / 州代码 → 两位大写代码。无法识别时原样返回（去空格）。"""
    trimmed = (value or '').strip()
    if not trimmed:
        return ''
    lowered = trimmed.lower()
    if lowered in STATE_NAME_TO_CODE:
        return STATE_NAME_TO_CODE[lowered]
    if trimmed.upper() in VALID_STATE_CODES:
        return trimmed.upper()
    return trimmed


def normalize_zip(value: str) -> str:
    """'100011234' → '10001-1234'，'ZIP: 10001' → '10001'。"""
    trimmed = (value or '').strip()
    if not trimmed:
        return ''
    match = _ZIP_SEARCH_RE.search(trimmed)
    if not match:
        return trimmed
    five, plus_four = match.groups()
    return f"{five}-{plus_four}" if plus_four else five


def normalize_city(value: str) -> str:
    trimmed = (value or '').strip()
    return ' '.join(word.capitalize() for word in trimmed.split())


def extract_city_state(value: str):
    """
    "Houston TX" → ("Houston", "TX")，"HO Texas" → ("HO", "TX")。
    末尾不是州名 / 州代码时返回 None。
    """
    trimmed = (value or '').strip()
    for token, code in _STATE_TOKENS:
        match = re.match(rf'^(.+?)\s+({re.escape(token)})$', trimmed, re.IGNORECASE)
        if match:
            return match.group(1).strip(), code
    return None


# ── 解析 ────────────────────────────────────────────────────────────────────

def parse_address_string(address_string) -> Address:
    """
    把逗号拼接的整串地址拆成字段。

    从后往前识别：ZIP → 州（或 "州 ZIP" / "城市 州"）→ 剩下的是
    address1 / address2 / city。支持：
      "201 ELBRIDGE AVE, APT F, Cloverdale, California, 95425"
      "2900 W Dallas St, 130, HO Texas"
      "789 Pine Rd, Seattle, WA 98101"
    """
    result = Address()
    if not address_string or not isinstance(address_string, str):
        return result

    parts = [p.strip() for p in address_string.split(',') if p.strip()]
    if not parts:
        return result
    if len(parts) == 1:
        result.address1 = parts[0]
        return result

    remaining = list(parts)

    last = remaining[-1]
    if is_zip_code(last):
        result.zip = last
        remaining.pop()
    else:
        state_zip = _STATE_ZIP_RE.match(last)
        if state_zip and is_state_name(state_zip.group(1)):
            result.state = normalize_state(state_zip.group(1))
            result.zip = state_zip.group(2)
            remaining.pop()

    if not result.state and remaining:
        last = remaining[-1]
        if is_state_name(last):
            result.state = normalize_state(last)
            remaining.pop()
        else:
            city_state = extract_city_state(last)
            if city_state:
                result.city, result.state = city_state
                remaining.pop()

    if len(remaining) == 1:
        result.address1 = remaining[0]
    elif len(remaining) == 2:
        result.address1, second = remaining
        if is_apartment_string(second) or result.city:
            result.address2 = second
        else:
            result.city = second
    elif len(remaining) > 2:
        result.address1 = remaining[0]
        apt_index = next(
            (i for i in range(1, len(remaining)) if is_apartment_string(remaining[i])),
            -1,
        )
        if apt_index > 0:
            result.address2 = remaining[apt_index]
            if not result.city:
                after = remaining[apt_index + 1:]
                before = remaining[1:apt_index]
                result.city = ', '.join(after) or ', '.join(before)
        else:
            if not result.city:
                result.city = remaining[-1]
            result.address1 = ', '.join(remaining[:-1])

    return result


# 各家 intake 的字段命名
_ADDRESS1_KEYS = (
    'address1', 'address_1', 'addressLine1', 'address_line1', 'address_line_1',
    'street_address', 'streetAddress', 'shipping_address1', 'shippingAddress1', 'street',
)
_ADDRESS2_KEYS = (
    'address2', 'address_2', 'addressLine2', 'address_line2', 'address_line_2',
    'apartment', 'apt', 'suite', 'unit', 'shipping_address2', 'shippingAddress2',
)
_CITY_KEYS = ('city', 'shipping_city', 'shippingCity', 'town')
_STATE_KEYS = ('state', 'shipping_state', 'shippingState', 'province', 'region')
_ZIP_KEYS = (
    'zip', 'zip_code', 'zipCode', 'zipcode', 'postal_code', 'postalCode',
    'shipping_zip', 'shippingZip', 'postcode',
)
_COMBINED_KEYS = ('shipping_address', 'shippingAddress', 'billing_address', 'billingAddress', 'address')


def _first_value(payload: dict, keys) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    return ''


def extract_address_from_payload(payload: dict) -> Address:
    """
    从任意 intake payload 里抽地址。

    单独字段优先；单独字段缺失时才用 shipping_address / billing_address
    这类整串地址补齐缺的部分。
    """
    payload = payload or {}
    result = Address(
        address1=_first_value(payload, _ADDRESS1_KEYS),
        address2=_first_value(payload, _ADDRESS2_KEYS),
        city=_first_value(payload, _CITY_KEYS),
        state=_first_value(payload, _STATE_KEYS),
        zip=_first_value(payload, _ZIP_KEYS),
    )

    if not (result.address1 and result.city and result.state and result.zip):
        for key in _COMBINED_KEYS:
            combined = payload.get(key)
            if isinstance(combined, str) and ',' in combined:
                parsed = parse_address_string(combined)
                for field_name in ('address1', 'address2', 'city', 'state', 'zip'):
                    if not getattr(result, field_name):
                        setattr(result, field_name, getattr(parsed, field_name))
                break

    result.state = normalize_state(result.state)
    result.zip = normalize_zip(result.zip)
    return result


def smart_parse_address(value) -> Address:
    """dict / JSON 字符串 / 逗号拼接字符串，都转成 Address。"""
    if not value:
        return Address()
    if isinstance(value, dict):
        return extract_address_from_payload(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith('{'):
            try:
                decoded = json.loads(stripped)
            except ValueError:
                decoded = None
            if isinstance(decoded, dict):
                return extract_address_from_payload(decoded)
        return parse_address_string(stripped)
    return Address()


# ── 校验 ────────────────────────────────────────────────────────────────────

def is_address_complete(address: Address) -> bool:
    """药房要求 address1 / city / state / zip 四个字段都非空。"""
    return all(
        (getattr(address, field_name) or '').strip()
        for field_name in ('address1', 'city', 'state', 'zip')
    )


def validate_address(address: Address) -> dict:
    errors = []
    warnings = []

    if not address.address1.strip():
        errors.append('Street address is required')
    if not address.city.strip():
        errors.append('City is required')
    if not address.state.strip():
        errors.append('State is required')
    elif normalize_state(address.state) not in VALID_STATE_CODES:
        errors.append(f'Invalid state: {address.state}')
    if not address.zip.strip():
        errors.append('ZIP code is required')
    elif not is_zip_code(normalize_zip(address.zip)):
        errors.append(f'Invalid ZIP code: {address.zip}')

    if _PO_BOX_RE.search(address.address1) or _PO_BOX_RE.search(address.address2):
        warnings.append('PO Box addresses may not be accepted for pharmacy shipments')

    return {'is_valid': not errors, 'errors': errors, 'warnings': warnings}


def is_valid_address(address: Address) -> bool:
    return validate_address(address)['is_valid']


# ── 修复 ────────────────────────────────────────────────────────────────────

def reconcile_address(address1='', address2='', city='', state='', zip_code='') -> Address:
    """
    修复被错位存储的地址字段。纯函数，不修改输入。

    规则：
      1. 没有独立字段（city/state/zip/address2 全空）且 address1 含逗号
         → 整串重新解析。
      2. 字段看起来坏了且 address1 含逗号 → 整串重新解析，能拆出城市和州就用它。
      3. 否则就地修：
         - zip 是州名 → 挪到 state，zip 清空；原 state 不是合法州时当作城市
         - city 是公寓号 → 挪到 address2
         - state 是邮编 → 挪到 zip
         - state 不合法 → 试着从 "city state" 里拆
    """
    addr1 = (address1 or '').strip()
    addr2 = (address2 or '').strip()
    city = (city or '').strip()
    state = (state or '').strip()
    zip_code = (zip_code or '').strip()

    zip_is_state_name = bool(zip_code) and is_state_name(zip_code)
    zip_looks_invalid = bool(zip_code) and not is_zip_code(zip_code) and not zip_is_state_name
    state_looks_like_zip = bool(state) and is_zip_code(state)
    state_looks_invalid = (
        len(state) > 2 and not is_state_name(state) and not state_looks_like_zip
    )
    city_looks_like_apt = bool(city) and is_apartment_string(city)

    corrupted = (
        zip_is_state_name or zip_looks_invalid or state_looks_like_zip
        or state_looks_invalid or city_looks_like_apt
    )
    has_separate_components = bool(city or state or zip_code or addr2)

    if ',' in addr1 and not has_separate_components:
        return parse_address_string(addr1)

    if ',' in addr1 and corrupted:
        parsed = parse_address_string(addr1)
        # 整串里能拆出城市和州才信它，否则继续就地修
        if parsed.city and parsed.state:
            return parsed

    if not corrupted:
        return Address(addr1, addr2, city, normalize_state(state), zip_code)

    fixed_city, fixed_state, fixed_zip, fixed_addr2 = city, state, zip_code, addr2

    if zip_is_state_name:
        fixed_state = normalize_state(zip_code)
        fixed_zip = ''
        # state 和 zip 对调存的情况：zip 字段的州名移走后，把 state 里的邮编放回 zip
        if state_looks_like_zip:
            fixed_zip = state
        elif state and not is_state_name(state) and (not city or city_looks_like_apt):
            # state="HO" 这种多半是城市缩写
            fixed_city = state

    if city_looks_like_apt and not fixed_addr2:
        fixed_addr2 = city
        if fixed_city == city:
            fixed_city = ''

    if state_looks_like_zip and not zip_is_state_name:
        if not fixed_zip or zip_looks_invalid:
            fixed_zip = state
        fixed_state = ''

    if state_looks_invalid and not city_looks_like_apt:
        city_state = extract_city_state(f"{city} {state}".strip())
        if city_state:
            fixed_city, fixed_state = city_state

    return Address(addr1, fixed_addr2, fixed_city, normalize_state(fixed_state), fixed_zip)


def reconcile_patient_address(patient, save=True):
    """
    修复 patient 上的地址并（可选）写回数据库。

    Returns:
        (Address, changed: bool)
    """
    fixed = reconcile_address(
        patient.address1, patient.address2, patient.city, patient.state, patient.zip,
    )
    changes = {
        field_name: getattr(fixed, field_name)
        for field_name in ('address1', 'address2', 'city', 'state', 'zip')
        if (getattr(patient, field_name) or '') != getattr(fixed, field_name)
    }
    if changes and save:
        for field_name, value in changes.items():
            setattr(patient, field_name, value)
        patient.save(update_fields=[*changes.keys(), 'updated_at'])
        logger.info("[ADDRESS] patient=%s 地址已修复 fields=%s", patient.id, sorted(changes))
    return fixed, bool(changes)
