import json
from typing import Dict, Any
from urllib.parse import urlparse
from utils.exceptions import ValidationError

class TaskValidator:
    """Validator for task submissions coming from producers."""

    # Actions the page agent and executor understand. The queue accepts others
    # too; they resolve as "Unknown action" errors when executed.
    KNOWN_ACTIONS = {
        'navigate', 'click', 'type', 'scrape', 'scroll_feed',
        'like', 'follow', 'reply', 'screenshot'
    }

    SELECTOR_ACTIONS = {'click', 'type'}

    @staticmethod
    def validate_task_request(task_data: Dict[str, Any]) -> None:
        """
        Validate an enqueue request body.

        Args:
            task_data: Request dictionary to validate

        Raises:
            ValidationError: If validation fails
        """
        action = task_data.get('action')
        if not isinstance(action, str) or not action.strip():
            raise ValidationError("action is required")

        if task_data.get('target_url') is not None:
            TaskValidator.validate_url(task_data['target_url'])

        if task_data.get('callback_url') is not None:
            TaskValidator.validate_url(task_data['callback_url'])

        ttl = task_data.get('ttl_seconds')
        if ttl is not None:
            if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0:
                raise ValidationError("ttl_seconds must be a positive number")

        params = task_data.get('params')
        if params is not None and not isinstance(params, dict):
            raise ValidationError("params must be an object")

        if action in TaskValidator.SELECTOR_ACTIONS and params and 'selector' in params:
            TaskValidator.validate_selector(params['selector'])

    @staticmethod
    def validate_url(url: str) -> None:
        """
        Validate a URL.

        Args:
            url: URL to validate

        Raises:
            ValidationError: If URL is invalid
        """
        if not isinstance(url, str) or not url:
            raise ValidationError("URL must be a non-empty string")

        try:
            result = urlparse(url)
        except ValueError as e:
            raise ValidationError(f"Invalid URL: {url} - {str(e)}")

        if not all([result.scheme, result.netloc]):
            raise ValidationError(f"Invalid URL format: {url}")

        if result.scheme not in ['http', 'https']:
            raise ValidationError(f"URL must use http or https: {url}")

    @staticmethod
    def validate_selector(selector: str) -> None:
        """
        Validate a CSS selector.

        Args:
            selector: CSS selector to validate

        Raises:
            ValidationError: If selector is invalid
        """
        if not isinstance(selector, str) or not selector:
            raise ValidationError("Selector must be a non-empty string")

        if selector.strip() != selector:
            raise ValidationError("Selector should not have leading/trailing whitespace")

        dangerous_patterns = ['javascript:', 'data:', '<script', 'eval(']
        for pattern in dangerous_patterns:
            if pattern.lower() in selector.lower():
                raise ValidationError(f"Selector contains dangerous pattern: {pattern}")

def parse_params_json(params_json: str) -> Dict[str, Any]:
    """
    Parse a task params object given as a JSON string (CLI input).

    Raises:
        ValidationError: If JSON is invalid or not an object
    """
    if not params_json:
        return {}

    try:
        params = json.loads(params_json)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON: {str(e)}")

    if not isinstance(params, dict):
        raise ValidationError("params JSON must be an object")

    return params
