"""
Error Handling and Messaging System for slotmap

This module provides error classification and reporting for slot, device,
and mapping operations, with actionable messages and troubleshooting
suggestions.
"""

import logging
import errno
import traceback
from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass

from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from . import core_utils
from .core_utils import print_warning

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels for classification"""
    WARNING = "warning"     # Warning that doesn't prevent operation
    ERROR = "error"         # Error that prevents current operation


class ErrorCategory(Enum):
    """Error categories for systematic classification"""
    PERMISSION = "permission"       # Permission-related errors
    HARDWARE = "hardware"           # Slot and device lookups
    VALIDATION = "validation"       # Input validation errors
    DEPENDENCY = "dependency"       # Missing or failing external tools
    SYSTEM = "system"               # Cluster management errors
    UNKNOWN = "unknown"             # Unclassified errors


@dataclass
class ErrorInfo:
    """Comprehensive error information structure"""
    message: str                            # User-friendly error message
    code: str                               # Unique error code
    severity: ErrorSeverity                 # Error severity level
    category: ErrorCategory                 # Error category
    details: Optional[str] = None           # Detailed error information
    suggestions: List[str] = None           # Troubleshooting suggestions
    exception: Optional[Exception] = None   # Original exception if applicable
    context: Optional[Dict[str, Any]] = None # Additional context information

    def __post_init__(self):
        """Initialize default values for optional fields"""
        if self.suggestions is None:
            self.suggestions = []
        if self.context is None:
            self.context = {}


class SlotmapError(Exception):
    """Base exception class for all slotmap errors"""
    def __init__(self,
                 message: str,
                 code: str = "SLOTMAP-E000",
                 severity: ErrorSeverity = ErrorSeverity.ERROR,
                 category: ErrorCategory = ErrorCategory.UNKNOWN,
                 details: Optional[str] = None,
                 suggestions: List[str] = None,
                 context: Dict[str, Any] = None,
                 original_exception: Exception = None):
        """
        Initialize a SlotmapError with comprehensive information

        Args:
            message: User-friendly error message
            code: Unique error code
            severity: Error severity level
            category: Error category
            details: Detailed error information
            suggestions: Troubleshooting suggestions
            context: Additional context information
            original_exception: Original exception if applicable
        """
        self.error_info = ErrorInfo(
            message=message,
            code=code,
            severity=severity,
            category=category,
            details=details,
            suggestions=suggestions or [],
            exception=original_exception,
            context=context or {}
        )
        super().__init__(message)

    @property
    def code(self) -> str:
        """Get the error code"""
        return self.error_info.code

    @property
    def severity(self) -> ErrorSeverity:
        """Get the error severity"""
        return self.error_info.severity

    @property
    def category(self) -> ErrorCategory:
        """Get the error category"""
        return self.error_info.category

    @property
    def suggestions(self) -> List[str]:
        """Get troubleshooting suggestions"""
        return self.error_info.suggestions

    @property
    def details(self) -> Optional[str]:
        """Get detailed error information"""
        return self.error_info.details

    @property
    def context(self) -> Dict[str, Any]:
        """Get additional context information"""
        return self.error_info.context


# Specific error classes for different categories
class PrivilegeError(SlotmapError):
    """Not running with sufficient privilege"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.PERMISSION)
        kwargs.setdefault('code', 'SLOTMAP-E100')
        kwargs.setdefault('suggestions', ["Run the command again with sudo or as root"])
        super().__init__(message, **kwargs)


class InvalidArgument(SlotmapError):
    """Bad command line flags or rejected user input"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.VALIDATION)
        kwargs.setdefault('code', 'SLOTMAP-E800')
        super().__init__(message, **kwargs)


class ToolUnavailable(SlotmapError):
    """A required external tool is missing or failed"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.DEPENDENCY)
        kwargs.setdefault('code', 'SLOTMAP-E900')
        super().__init__(message, **kwargs)


class SlotNotFound(SlotmapError):
    """No slot block matches the requested slot"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.HARDWARE)
        kwargs.setdefault('code', 'SLOTMAP-E401')
        kwargs.setdefault('suggestions', ["Verify the slot number with 'dmidecode -t slot'"])
        super().__init__(message, **kwargs)


class BusAddressMissing(SlotmapError):
    """The slot block carries no bus address"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.HARDWARE)
        kwargs.setdefault('code', 'SLOTMAP-E402')
        kwargs.setdefault('suggestions', ["The slot may be empty, or the firmware does not report its bus address"])
        super().__init__(message, **kwargs)


class DeviceNotFound(SlotmapError):
    """The bus enumerator knows no device at the address"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.HARDWARE)
        kwargs.setdefault('code', 'SLOTMAP-E403')
        super().__init__(message, **kwargs)


class ClassificationMismatch(SlotmapError):
    """A device was found but is not a network controller"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.HARDWARE)
        kwargs.setdefault('code', 'SLOTMAP-E404')
        super().__init__(message, **kwargs)


class MappingError(SlotmapError):
    """Creating a cluster resource mapping failed"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.SYSTEM)
        kwargs.setdefault('code', 'SLOTMAP-E1000')
        super().__init__(message, **kwargs)


class ErrorHandler:
    """
    Centralized error handling for slotmap

    Converts foreign exceptions, logs them, and displays them to the user.
    """

    def __init__(self):
        """Initialize the error handler"""
        self.logger = logging.getLogger('slotmap.error_handler')

    def handle_error(self, error: Exception, context: Dict[str, Any] = None) -> SlotmapError:
        """
        Handle an exception with appropriate logging and display

        Args:
            error: The exception to handle
            context: Additional context information

        Returns:
            SlotmapError: The (possibly converted) error that was displayed
        """
        if not isinstance(error, SlotmapError):
            error = self._convert_exception(error, context)

        if context:
            error.error_info.context.update(context)

        self._log_error(error)
        self.display_error(error)
        return error

    def _convert_exception(self,
                           exception: Exception,
                           context: Dict[str, Any] = None) -> SlotmapError:
        """Convert a standard exception to a SlotmapError"""
        category = ErrorCategory.UNKNOWN
        code = "SLOTMAP-E000"

        if isinstance(exception, OSError) and exception.errno == errno.EACCES:
            category = ErrorCategory.PERMISSION
            code = "SLOTMAP-E101"
            message = "Permission denied"
            details = str(exception)
            suggestions = ["Run the command again with sudo or as root"]
        else:
            message = str(exception) or "An unknown error occurred"
            details = traceback.format_exception_only(type(exception), exception)[-1].strip()
            suggestions = ["Check the log file for more details"]

        return SlotmapError(
            message=message,
            code=code,
            category=category,
            details=details,
            suggestions=suggestions,
            original_exception=exception,
            context=context
        )

    def _log_error(self, error: SlotmapError):
        """Log error information to the logger"""
        log_message = f"[{error.code}] {error.severity.value.upper()}: {error}"

        if error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.error(log_message, exc_info=error.error_info.exception)

    def display_error(self, error: SlotmapError):
        """Display error information to the user"""
        if error.severity == ErrorSeverity.WARNING:
            print_warning(escape(str(error)))
            for suggestion in error.suggestions:
                core_utils.console.print(f"  • {suggestion}", markup=False)
        else:
            self._display_panel(error)

    def _display_panel(self, error: SlotmapError):
        """Display error message in a rich panel"""
        body = f"Error {error.code}: {error}"

        if error.details:
            body += f"\n\n{error.details}"

        if error.suggestions:
            body += "\n\nSuggested Solutions:"
            for suggestion in error.suggestions:
                body += f"\n  • {suggestion}"

        # Plain Text: details may hold raw tool output
        core_utils.error_console.print(Panel(
            Text(body),
            title=f"[red]{error.category.value.upper()} ERROR[/]",
            border_style="red"
        ))


# Singleton instance for global access
_error_handler = None

def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance

    Returns:
        ErrorHandler: The global error handler
    """
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler
