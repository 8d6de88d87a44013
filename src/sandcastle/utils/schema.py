import logging
from typing import Any, Dict, Optional, Tuple

import jsonschema

logger = logging.getLogger(__name__)


def validate_data(data: Any, schema: Optional[Dict[str, Any]]) -> Tuple[bool, Optional[str]]:
    """
    Validate data against a JSON schema.

    Returns:
        (is_valid, error_message)
    """
    if schema is None:
        return True, None

    try:
        jsonschema.validate(instance=data, schema=schema)
        return True, None
    except jsonschema.exceptions.ValidationError as e:
        error_path = " -> ".join(map(str, e.path))
        if error_path:
            error_msg = f"Validation Error at '{error_path}': {e.message}"
        else:
            error_msg = f"Validation Error: {e.message}"
        logger.debug(f"Schema validation failed: {error_msg}")
        return False, error_msg
    except jsonschema.exceptions.SchemaError as e:
        error_msg = f"Invalid schema: {e.message}"
        logger.error(error_msg)
        return False, error_msg
