"""S/MIME operations: decrypt, sign, encrypt, verify.

Each call runs the configured CMS tool once in its own ProcessContext.
The tool does all the cryptography; this module builds its argument
list, feeds it the payload and interprets the outcome.

Success means exit status 0. Anything else hands the tool's standard
error to the diagnostic sink and raises ToolFailureError; partial output
of a failed run is discarded.

Usage:
    from smime_exec import SmimeTool

    tool = SmimeTool()
    ciphertext = tool.encrypt(b"hello", recipients=["alice@example.com"])
    plaintext = tool.decrypt(ciphertext, credential=lambda: ask_password())
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

from smime_exec.config import Settings, get_settings
from smime_exec.correlate import SignerIdentity, correlate_signers
from smime_exec.credentials import CredentialSource, resolve_credential
from smime_exec.diagnostics import DiagnosticSink, LoggingDiagnosticSink
from smime_exec.errors import ToolFailureError
from smime_exec.logging import get_logger, log_operation
from smime_exec.process import Argument, ProcessContext
from smime_exec.report import parse_report

logger = get_logger(__name__)

Content = Union[str, bytes]


@dataclass
class VerificationResult:
    """Outcome of verifying a detached signature."""

    valid: bool
    signers: list[SignerIdentity] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid


def _as_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def _repeated(flag: str, values: Sequence[str]) -> list[str]:
    arguments = []
    for value in values:
        arguments.extend([flag, value])
    return arguments


def _require_identifiers(identifiers: Sequence[str], kind: str) -> list[str]:
    if isinstance(identifiers, str):
        identifiers = [identifiers]
    identifiers = list(identifiers)
    if not identifiers:
        raise ValueError(f"At least one {kind} is required")
    if any(not identifier for identifier in identifiers):
        raise ValueError(f"Empty {kind} identifier")
    return identifiers


# =============================================================================
# Argument lists
# =============================================================================

def decrypt_arguments(settings: Settings, password: bytes) -> list[Argument]:
    return [
        settings.decrypt_flag,
        settings.database_flag, settings.database_dir,
        settings.password_flag, password,
    ]


def sign_arguments(settings: Settings, password: bytes, signers: Sequence[str]) -> list[Argument]:
    return [
        settings.sign_flag,
        settings.database_flag, settings.database_dir,
        settings.detached_flag,
        settings.password_flag, password,
        *_repeated(settings.signer_flag, signers),
    ]


def encrypt_arguments(settings: Settings, recipients: Sequence[str]) -> list[Argument]:
    return [
        settings.encrypt_flag,
        settings.database_flag, settings.database_dir,
        *_repeated(settings.recipient_flag, recipients),
    ]


def verify_arguments(settings: Settings, content_path: str) -> list[Argument]:
    return [
        settings.verify_flag,
        settings.database_flag, settings.database_dir,
        settings.content_flag, content_path,
    ]


# =============================================================================
# Tool
# =============================================================================

class SmimeTool:
    """Runs S/MIME operations through the external CMS tool.

    Args:
        settings: Tool settings (defaults to the environment-based ones)
        sink: Receives the tool's standard error when a run fails
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        sink: Optional[DiagnosticSink] = None,
    ):
        self.settings = settings or get_settings()
        self.sink = sink or LoggingDiagnosticSink()

    def new_context(self) -> ProcessContext:
        """A fresh context bound to the configured program."""
        return ProcessContext(
            self.settings.program,
            poll_interval=self.settings.poll_interval,
            timeout=self.settings.timeout,
            secret_flags={self.settings.password_flag},
        )

    def _execute(self, arguments: list[Argument], payload: bytes) -> bytes:
        """Run the tool once and return its output, or raise on failure."""
        with self.new_context() as context:
            try:
                context.run(arguments, payload)
                context.raise_for_status()
            except ToolFailureError as e:
                logger.warning(
                    "Tool failed",
                    error=str(e),
                    returncode=e.returncode,
                    signal=e.signal,
                )
                self.sink.show(e.diagnostic)
                raise
            return context.output

    @log_operation("decrypt")
    def decrypt(self, ciphertext: bytes, credential: CredentialSource) -> bytes:
        """Decrypt a CMS enveloped message.

        Args:
            ciphertext: The encrypted message as produced by encrypt()
            credential: Database password, or a callable that supplies it

        Returns:
            The decrypted content
        """
        with resolve_credential(credential) as secret:
            arguments = decrypt_arguments(self.settings, secret.to_bytes())
            return self._execute(arguments, _as_bytes(ciphertext))

    @log_operation("sign")
    def sign(
        self,
        text: Content,
        signers: Sequence[str],
        credential: CredentialSource,
    ) -> bytes:
        """Create a detached signature over ``text``.

        Args:
            text: Content to sign (str is encoded as UTF-8)
            signers: Identifiers of the signing certificates
            credential: Database password, or a callable that supplies it

        Returns:
            The detached CMS signature
        """
        signers = _require_identifiers(signers, "signer")
        with resolve_credential(credential) as secret:
            arguments = sign_arguments(self.settings, secret.to_bytes(), signers)
            return self._execute(arguments, _as_bytes(text))

    @log_operation("encrypt")
    def encrypt(self, plaintext: Content, recipients: Sequence[str]) -> bytes:
        """Encrypt ``plaintext`` for every recipient."""
        recipients = _require_identifiers(recipients, "recipient")
        return self._execute(encrypt_arguments(self.settings, recipients), _as_bytes(plaintext))

    @log_operation("verify")
    def verify(self, text: Content, signature: bytes) -> VerificationResult:
        """Verify a detached signature over ``text``.

        The tool reads the signed content from a file, so ``text`` is
        written to a private temporary file for the duration of the run.

        Returns:
            VerificationResult with the verdict and the identified signers
        """
        content_path = self._write_content_file(_as_bytes(text))
        try:
            output = self._execute(verify_arguments(self.settings, content_path), bytes(signature))
        finally:
            Path(content_path).unlink(missing_ok=True)

        report = parse_report(output)
        signers = correlate_signers(report.certificates, report.signers)
        logger.info(
            "Signature checked",
            valid=report.valid,
            signer_records=len(report.signers),
            signers_identified=len(signers),
        )
        return VerificationResult(valid=report.valid, signers=signers)

    def _write_content_file(self, content: bytes) -> str:
        """Write content to an owner-only temporary file and return its path."""
        with tempfile.NamedTemporaryFile(
            prefix="smime-exec-",
            suffix=".content",
            dir=self.settings.temp_dir,
            delete=False,
        ) as tmp:
            path = tmp.name
            try:
                os.chmod(path, 0o600)
                tmp.write(content)
            except OSError:
                tmp.close()
                Path(path).unlink(missing_ok=True)
                raise
        return path


# =============================================================================
# Module-level shortcuts using the default settings
# =============================================================================

def decrypt(ciphertext: bytes, credential: CredentialSource) -> bytes:
    return SmimeTool().decrypt(ciphertext, credential)


def sign(text: Content, signers: Sequence[str], credential: CredentialSource) -> bytes:
    return SmimeTool().sign(text, signers, credential)


def encrypt(plaintext: Content, recipients: Sequence[str]) -> bytes:
    return SmimeTool().encrypt(plaintext, recipients)


def verify(text: Content, signature: bytes) -> VerificationResult:
    return SmimeTool().verify(text, signature)
