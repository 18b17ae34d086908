"""
smime-exec - S/MIME operations through an external CMS tool.

The cryptography is done by a command-line tool (NSS cmsutil by default);
this package runs it, feeds it data and makes sense of what it prints.

Example:
    from smime_exec import SmimeTool

    tool = SmimeTool()
    signature = tool.sign("document", signers=["alice"], credential="db-password")
    result = tool.verify("document", signature)
    if result.valid:
        for signer in result.signers:
            print(signer.subject)
"""

from smime_exec.config import Settings, get_settings
from smime_exec.correlate import SignerIdentity, correlate_signers
from smime_exec.credentials import Credential, resolve_credential, secure_zero
from smime_exec.diagnostics import (
    DiagnosticSink,
    LastDiagnosticSink,
    LoggingDiagnosticSink,
    StreamDiagnosticSink,
)
from smime_exec.errors import (
    SmimeError,
    AlreadyRunningError,
    ProcessNotStartedError,
    CredentialError,
    ToolFailureError,
    ToolTimeoutError,
)
from smime_exec.operations import (
    SmimeTool,
    VerificationResult,
    decrypt,
    sign,
    encrypt,
    verify,
)
from smime_exec.process import ProcessContext, ProcessStatus
from smime_exec.report import (
    CertificateRecord,
    SignerInfoRecord,
    VerificationReport,
    parse_report,
)

__version__ = "0.1.0"

__all__ = [
    # Operations
    "SmimeTool",
    "VerificationResult",
    "decrypt",
    "sign",
    "encrypt",
    "verify",
    # Process
    "ProcessContext",
    "ProcessStatus",
    # Report
    "CertificateRecord",
    "SignerInfoRecord",
    "VerificationReport",
    "parse_report",
    "SignerIdentity",
    "correlate_signers",
    # Credentials
    "Credential",
    "resolve_credential",
    "secure_zero",
    # Diagnostics
    "DiagnosticSink",
    "LastDiagnosticSink",
    "LoggingDiagnosticSink",
    "StreamDiagnosticSink",
    # Config
    "Settings",
    "get_settings",
    # Errors
    "SmimeError",
    "AlreadyRunningError",
    "ProcessNotStartedError",
    "CredentialError",
    "ToolFailureError",
    "ToolTimeoutError",
]
