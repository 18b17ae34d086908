"""Parser for the tool's verification report.

The report is line oriented, one ``key=value`` entry per line:

    signatureValid=yes
    certificate[0].data.subject=CN=Alice,O=Example
    certificate[0].data.issuerName=CN=Example CA
    certificate[0].data.serialNumber=01:a3
    signerInformation[0].issuerName=CN=Example CA
    signerInformation[0].serialNumber=01:a3

Indexed keys are grouped into one record per (kind, index); the part of
the key after ``].`` becomes the field name. Anything else is ignored.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

SIGNATURE_VALID_KEY = "signatureValid"

_LINE = re.compile(r"^(?P<key>[^=\s][^=]*)=(?P<value>.*)$")
_INDEXED_KEY = re.compile(r"^(?P<family>[A-Za-z]+)\[(?P<index>\d+)\]\.(?P<field>.+)$")


class RecordKind(str, Enum):
    """Indexed record families the parser understands."""

    CERTIFICATE = "certificate"
    SIGNER_INFORMATION = "signerInformation"


@dataclass
class CertificateRecord:
    """Fields of one ``certificate[N]`` group."""

    index: int
    fields: dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> str | None:
        return self.fields.get(name)


@dataclass
class SignerInfoRecord:
    """Fields of one ``signerInformation[N]`` group."""

    index: int
    fields: dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> str | None:
        return self.fields.get(name)


@dataclass
class VerificationReport:
    """Parsed report: overall verdict plus grouped records."""

    valid: bool = False
    certificates: list[CertificateRecord] = field(default_factory=list)
    signers: list[SignerInfoRecord] = field(default_factory=list)


# Record type created for each indexed family
RECORD_TYPES = {
    RecordKind.CERTIFICATE: CertificateRecord,
    RecordKind.SIGNER_INFORMATION: SignerInfoRecord,
}


def parse_report(text: Union[str, bytes]) -> VerificationReport:
    """Parse a verification report in a single pass.

    Tolerant by construction: lines without ``=``, unknown keys and
    malformed indices are skipped. Only ``signatureValid=yes`` makes the
    report valid.

    Args:
        text: Report as emitted by the tool (bytes are decoded as UTF-8)

    Returns:
        VerificationReport with records ordered by index
    """
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="replace")

    valid = False
    records: dict[tuple[RecordKind, int], Union[CertificateRecord, SignerInfoRecord]] = {}

    for line in text.splitlines():
        match = _LINE.match(line)
        if not match:
            continue
        key, value = match.group("key"), match.group("value")

        if key == SIGNATURE_VALID_KEY:
            if value == "yes":
                valid = True
            continue

        indexed = _INDEXED_KEY.match(key)
        if not indexed:
            continue
        try:
            kind = RecordKind(indexed.group("family"))
        except ValueError:
            continue

        index = int(indexed.group("index"))
        record = records.get((kind, index))
        if record is None:
            record = records[(kind, index)] = RECORD_TYPES[kind](index=index)
        record.fields[indexed.group("field")] = value

    def collect(kind: RecordKind) -> list:
        return [records[k] for k in sorted(k for k in records if k[0] is kind)]

    return VerificationReport(
        valid=valid,
        certificates=collect(RecordKind.CERTIFICATE),
        signers=collect(RecordKind.SIGNER_INFORMATION),
    )
