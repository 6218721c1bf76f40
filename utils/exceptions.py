class BrowserAutomationError(Exception):
    """Base exception for browser automation errors."""
    pass

class PagePoolError(BrowserAutomationError):
    """Errors related to managed page bookkeeping."""
    pass

class PageInitializationError(PagePoolError):
    """Failed to start the browser or open a page."""
    pass

class ElementWaitTimeoutError(BrowserAutomationError):
    """Element did not appear within the allotted wait."""
    def __init__(self, selector: str, timeout_ms: int):
        self.selector = selector
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout waiting for: {selector} ({timeout_ms}ms)")

class ElementInteractionError(BrowserAutomationError):
    """Failed to interact with element."""
    def __init__(self, action: str, element: str, reason: str):
        self.action = action
        self.element = element
        self.reason = reason
        super().__init__(
            f"Failed to {action} element '{element}': {reason}"
        )

class NavigationError(BrowserAutomationError):
    """Failed to navigate to URL."""
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to navigate to {url}: {reason}")

class PageLoadTimeoutError(NavigationError):
    """Page never reached the load state."""
    def __init__(self, url: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(url, f"page did not finish loading within {timeout_ms}ms")

class TaskTimeoutError(BrowserAutomationError):
    """Page agent did not answer a dispatched task in time."""
    def __init__(self, task_id: str, timeout: float):
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(
            f"Task {task_id} timed out: page agent did not respond within {timeout:g}s"
        )

class QueueTransportError(BrowserAutomationError):
    """Task queue could not be reached or answered with garbage."""
    pass

class ValidationError(BrowserAutomationError):
    """Input validation errors."""
    pass
