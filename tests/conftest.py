"""Pytest fixtures: a stand-in CMS tool and its database."""

import json
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from smime_exec.config import Settings
from smime_exec.diagnostics import LastDiagnosticSink
from smime_exec.operations import SmimeTool

FAKE_TOOL = Path(__file__).parent / "fake_cmstool.py"

# Database password and the identities whose private keys it unlocks
PASSWORD = "pw"
IDENTITIES = ["id1", "r1"]


def format_serial(serial: int) -> str:
    """Colon-separated hex, the way certificate tools print serials."""
    raw = serial.to_bytes((serial.bit_length() + 7) // 8 or 1, "big")
    return ":".join(f"{b:02x}" for b in raw)


def build_certificate(common_name: str, issuer_name: x509.Name, issuer_key, serial: int):
    """Issue an EC certificate for ``common_name``."""
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(serial)
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=365))
        .sign(issuer_key, hashes.SHA256())
    )
    return cert


@pytest.fixture(scope="session")
def certificates():
    """Certificates for the test identities, all issued by one test CA.

    Returns:
        dict identity -> {"subject", "issuer", "serial"} as the tool prints them
    """
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
        x509.NameAttribute(NameOID.COMMON_NAME, "Test CA"),
    ])

    entries = {}
    for identity in ["id1", "id2", "r1", "r2"]:
        cert = build_certificate(f"{identity}.example.com", ca_name, ca_key, x509.random_serial_number())
        entries[identity] = {
            "subject": cert.subject.rfc4514_string(),
            "issuer": cert.issuer.rfc4514_string(),
            "serial": format_serial(cert.serial_number),
        }
    return entries


@pytest.fixture
def database_dir(tmp_path, certificates):
    """Certificate/key database understood by the fake tool."""
    dbdir = tmp_path / "nssdb"
    dbdir.mkdir()
    (dbdir / "keys.json").write_text(json.dumps({
        "passwords": {
            PASSWORD: IDENTITIES,
            "other-pw": ["id2", "r2"],
        },
    }))
    (dbdir / "certs.json").write_text(json.dumps(certificates))
    return dbdir


@pytest.fixture
def fake_tool(tmp_path):
    """Executable wrapper that runs fake_cmstool.py with this interpreter."""
    script = tmp_path / "cmstool"
    script.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_TOOL}" "$@"\n')
    script.chmod(0o755)
    return str(script)


@pytest.fixture
def temp_dir(tmp_path):
    """Private directory for the verify content file."""
    path = tmp_path / "tmp"
    path.mkdir()
    return path


@pytest.fixture
def settings(fake_tool, database_dir, temp_dir):
    return Settings(
        program=fake_tool,
        database_dir=str(database_dir),
        poll_interval=0.05,
        timeout=20,
        temp_dir=str(temp_dir),
    )


@pytest.fixture
def sink():
    return LastDiagnosticSink()


@pytest.fixture
def tool(settings, sink):
    return SmimeTool(settings, sink=sink)


@pytest.fixture
def behavior(monkeypatch):
    """Switch the fake tool into one of its failure modes."""
    def set_behavior(name: str):
        monkeypatch.setenv("FAKE_CMSTOOL_BEHAVIOR", name)
    monkeypatch.delenv("FAKE_CMSTOOL_BEHAVIOR", raising=False)
    return set_behavior


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's SMIME_EXEC_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("SMIME_EXEC_"):
            monkeypatch.delenv(name)
