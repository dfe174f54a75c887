import re
from functools import wraps
from flask import request, jsonify
import logging

logger = logging.getLogger(__name__)

SUI_ADDRESS_PATTERN = re.compile(r'^0x[0-9a-fA-F]{64}$')
REFERRAL_CODE_PATTERN = re.compile(r'^CLUB[0-9A-Z]{4}$')
GAME_TYPE_PATTERN = re.compile(r'^[a-z0-9][a-z0-9-]{0,31}$')


def is_valid_sui_address(address) -> bool:
    """Validate Sui wallet address format (0x + 32 bytes hex)"""
    return isinstance(address, str) and SUI_ADDRESS_PATTERN.match(address) is not None


def is_referral_code(value) -> bool:
    return isinstance(value, str) and REFERRAL_CODE_PATTERN.match(value.upper()) is not None


def is_valid_game_type(value) -> bool:
    return isinstance(value, str) and GAME_TYPE_PATTERN.match(value) is not None


def format_address(address: str) -> str:
    """Shorten a wallet address for logs: 0x1234...abcd"""
    if not address or len(address) < 12:
        return address or ''
    return f"{address[:6]}...{address[-4:]}"


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_json_input(schema):
    """JSON validation decorator for Flask routes.

    ``schema`` maps field names to rules: ``required``, ``type`` (int, float,
    str, bool), ``min``, ``max``, ``allowed`` and ``format`` (sui_address,
    game_type). Coerced values are written back into the request body.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if not request.is_json:
                return jsonify({'success': False, 'error': 'Content type must be application/json'}), 400

            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({'success': False, 'error': 'Missing JSON body'}), 400

            errors = {}
            for field, rules in schema.items():
                value = data.get(field)

                if value is None:
                    if rules.get('required'):
                        errors[field] = 'This field is required'
                    continue

                field_type = rules.get('type')
                if field_type == 'int':
                    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                        errors[field] = 'Must be an integer'
                        continue
                    try:
                        value = data[field] = int(value)
                    except (TypeError, ValueError):
                        errors[field] = 'Must be an integer'
                        continue
                elif field_type == 'float':
                    if isinstance(value, bool):
                        errors[field] = 'Must be a number'
                        continue
                    try:
                        value = data[field] = float(value)
                    except (TypeError, ValueError):
                        errors[field] = 'Must be a number'
                        continue
                elif field_type == 'str' and not isinstance(value, str):
                    errors[field] = 'Must be a string'
                    continue
                elif field_type == 'bool' and not isinstance(value, bool):
                    errors[field] = 'Must be a boolean'
                    continue

                if 'min' in rules and _is_number(value) and value < rules['min']:
                    errors[field] = f'Must be at least {rules["min"]}'
                if 'max' in rules and _is_number(value) and value > rules['max']:
                    errors[field] = f'Must be at most {rules["max"]}'
                if 'allowed' in rules and value not in rules['allowed']:
                    errors[field] = f'Must be one of: {", ".join(rules["allowed"])}'

                fmt = rules.get('format')
                if fmt == 'sui_address' and not is_valid_sui_address(value):
                    errors[field] = 'Invalid wallet address'
                elif fmt == 'game_type' and not is_valid_game_type(value):
                    errors[field] = 'Invalid game type'

            if errors:
                logger.warning(f"Validation errors: {errors}")
                return jsonify({'success': False, 'error': 'Invalid request', 'details': errors}), 400

            return f(*args, **kwargs)
        return wrapper
    return decorator
