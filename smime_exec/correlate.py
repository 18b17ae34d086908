"""Match signer information to the certificates that issued them."""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from smime_exec.report import CertificateRecord, SignerInfoRecord

# Field names inside each record family
SIGNER_ISSUER = "issuerName"
SIGNER_SERIAL = "serialNumber"
CERT_SUBJECT = "data.subject"
CERT_ISSUER = "data.issuerName"
CERT_SERIAL = "data.serialNumber"


@dataclass(frozen=True)
class SignerIdentity:
    """Who signed: the subject of the matching certificate."""

    subject: str
    issuer: str
    serial: str


def find_certificate(
    certificates: Iterable[CertificateRecord],
    issuer: str,
    serial: str,
) -> Optional[CertificateRecord]:
    """First certificate issued by ``issuer`` with serial ``serial``."""
    for certificate in certificates:
        if certificate.get(CERT_ISSUER) == issuer and certificate.get(CERT_SERIAL) == serial:
            return certificate
    return None


def correlate_signers(
    certificates: Sequence[CertificateRecord],
    signers: Iterable[SignerInfoRecord],
) -> list[SignerIdentity]:
    """Resolve each signer to a SignerIdentity.

    Signers lacking an issuer or serial, and signers whose certificate is
    not in the report, are dropped. When several certificates match, the
    first in list order wins.
    """
    identities = []
    for signer in signers:
        issuer = signer.get(SIGNER_ISSUER)
        serial = signer.get(SIGNER_SERIAL)
        if issuer is None or serial is None:
            continue

        certificate = find_certificate(certificates, issuer, serial)
        if certificate is None:
            continue

        identities.append(
            SignerIdentity(
                subject=certificate.get(CERT_SUBJECT) or "",
                issuer=certificate.get(CERT_ISSUER),
                serial=certificate.get(CERT_SERIAL),
            )
        )
    return identities
