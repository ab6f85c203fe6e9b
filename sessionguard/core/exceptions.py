# sessionguard/core/exceptions.py
"""
Core exceptions for sessionguard.

Session and store failures are fatal and propagate up through the request
pipeline. A CSRF token mismatch is a recoverable condition that carries its
own status code so the application boundary can render it.
"""

from typing import Optional, Dict, Any


class SessionGuardError(Exception):
    """Base exception for all sessionguard errors"""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize base exception.
        
        Args:
            message: Human-readable error message
            details: Optional additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
    
    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class SessionError(SessionGuardError):
    """Errors in session management and state handling"""
    
    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize session error.
        
        Args:
            message: Error description
            session_id: Session that failed
            details: Additional session context
        """
        super().__init__(message, details)
        self.session_id = session_id
        
        if session_id:
            self.details['session_id'] = session_id


class StoreStartError(SessionError):
    """The underlying session store could not be started. Not retried."""


class CsrfTokenMismatchError(SessionGuardError):
    """Unsafe request without a token matching the session token"""
    
    status_code = 419
    
    def __init__(self, message: str = "CSRF token mismatch.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
    
    def headers(self) -> Dict[str, str]:
        return {}


class ConfigurationError(SessionGuardError):
    """Errors in system configuration and initialization"""
    
    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize configuration error.
        
        Args:
            message: Error description
            component: Component with configuration issue
            details: Additional configuration context
        """
        super().__init__(message, details)
        self.component = component
        
        if component:
            self.details['component'] = component


# Convenience functions for creating common errors

def config_error(message: str, component: str) -> ConfigurationError:
    """Create a configuration error with component context."""
    return ConfigurationError(message, component=component)
