"""
Override Trust Exception Hierarchy

Custom exceptions for external tool failures, configuration and
override handling.
"""

from typing import Any, Dict, List, Optional


class OverrideTrustError(Exception):
    """Base exception for all Override Trust errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "OVERRIDE_TRUST_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(OverrideTrustError):
    """Raised when a required setting is missing or points nowhere."""

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        value: Optional[Any] = None,
    ):
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={
                "setting": setting,
                "value": value,
            },
        )
        self.setting = setting
        self.value = value


class CommandError(OverrideTrustError):
    """Raised when an external command cannot be run to completion."""

    def __init__(
        self,
        message: str,
        argv: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
        code: str = "COMMAND_ERROR",
    ):
        super().__init__(
            message,
            code=code,
            details={
                "argv": list(argv or []),
                "returncode": returncode,
                "stderr": stderr,
            },
        )
        self.argv = list(argv or [])
        self.returncode = returncode
        self.stderr = stderr


class CommandNotFoundError(CommandError):
    """Raised when the executable does not exist."""

    def __init__(self, message: str, argv: Optional[List[str]] = None):
        super().__init__(message, argv=argv, code="COMMAND_NOT_FOUND")


class CommandTimeoutError(CommandError):
    """Raised when a command exceeds its time limit and is killed."""

    def __init__(
        self,
        message: str,
        argv: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(message, argv=argv, code="COMMAND_TIMEOUT")
        self.timeout = timeout
        self.details["timeout"] = timeout


class CommandFailedError(CommandError):
    """Raised when a command exits with a non-zero status."""

    def __init__(
        self,
        message: str,
        argv: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
        stdout: str = "",
    ):
        super().__init__(
            message,
            argv=argv,
            returncode=returncode,
            stderr=stderr,
            code="COMMAND_FAILED",
        )
        self.stdout = stdout


class RootAnchorError(OverrideTrustError):
    """Raised when the repository root commit cannot be resolved."""

    def __init__(self, message: str, repo_dir: Optional[str] = None):
        super().__init__(
            message,
            code="ROOT_ANCHOR_ERROR",
            details={"repo_dir": repo_dir},
        )
        self.repo_dir = repo_dir


class KeyImportError(OverrideTrustError):
    """Raised when a single public key cannot be imported and trusted."""

    def __init__(
        self,
        message: str,
        key_path: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(
            message,
            code="KEY_IMPORT_ERROR",
            details={
                "key_path": key_path,
                "stage": stage,
            },
        )
        self.key_path = key_path
        self.stage = stage


class OverrideDocumentError(OverrideTrustError):
    """Raised when a persisted override document cannot be parsed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        violations: Optional[List[str]] = None,
    ):
        super().__init__(
            message,
            code="OVERRIDE_DOCUMENT_ERROR",
            details={
                "path": path,
                "violations": violations or [],
            },
        )
        self.path = path
        self.violations = violations or []


class SigningError(OverrideTrustError):
    """Raised when an override must be signed but no signature was produced."""

    def __init__(self, message: str, signer: Optional[str] = None):
        super().__init__(
            message,
            code="SIGNING_ERROR",
            details={"signer": signer},
        )
        self.signer = signer
