"""smime-exec CLI - Run with: python -m smime_exec

Usage:
    smime-exec encrypt --recipient alice < message.txt > message.p7m
    smime-exec decrypt --password-file ~/.dbpass < message.p7m
    smime-exec sign --signer alice --password secret < doc.txt > doc.p7s
    smime-exec verify --content doc.txt --signature doc.p7s

Exit Codes:
    0 - Success (verify: signature valid)
    1 - Tool failure (verify: signature invalid)
    2 - Configuration error or invalid arguments
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from smime_exec.config import Settings
from smime_exec.credentials import Credential
from smime_exec.diagnostics import StreamDiagnosticSink
from smime_exec.errors import SmimeError, ToolFailureError
from smime_exec.logging import setup_logging
from smime_exec.operations import SmimeTool

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _read_input(path: Optional[str]) -> bytes:
    if path is None or path == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def _write_output(path: Optional[str], data: bytes) -> None:
    if path is None or path == "-":
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    else:
        Path(path).write_bytes(data)


def _credential(args: argparse.Namespace) -> Credential:
    if args.password_file:
        # first line only, without its newline
        raw = Path(args.password_file).read_bytes().splitlines()
        return Credential(raw[0] if raw else b"")
    return Credential(args.password)


def cmd_decrypt(tool: SmimeTool, args: argparse.Namespace) -> int:
    plaintext = tool.decrypt(_read_input(args.input), _credential(args))
    _write_output(args.output, plaintext)
    return EXIT_OK


def cmd_sign(tool: SmimeTool, args: argparse.Namespace) -> int:
    signature = tool.sign(_read_input(args.input), args.signer, _credential(args))
    _write_output(args.output, signature)
    return EXIT_OK


def cmd_encrypt(tool: SmimeTool, args: argparse.Namespace) -> int:
    ciphertext = tool.encrypt(_read_input(args.input), args.recipient)
    _write_output(args.output, ciphertext)
    return EXIT_OK


def cmd_verify(tool: SmimeTool, args: argparse.Namespace) -> int:
    content = Path(args.content).read_bytes()
    result = tool.verify(content, _read_input(args.signature))
    lines = [f"valid: {'yes' if result.valid else 'no'}"]
    for signer in result.signers:
        lines.append(f"{signer.subject} | {signer.issuer} | {signer.serial}")
    _write_output(args.output, ("\n".join(lines) + "\n").encode("utf-8"))
    return EXIT_OK if result.valid else EXIT_FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smime-exec",
        description="S/MIME decrypt, sign, encrypt and verify through an external CMS tool.",
    )
    parser.add_argument("--program", help="CMS tool to run (default: $SMIME_EXEC_PROGRAM or cmsutil)")
    parser.add_argument("--database-dir", help="Certificate/key database directory")
    parser.add_argument("--timeout", type=float, help="Seconds before the tool is killed")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log tool runs")

    commands = parser.add_subparsers(dest="command", required=True)

    def with_io(sub: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sub.add_argument("-i", "--input", help="Input file (default: stdin)")
        sub.add_argument("-o", "--output", help="Output file (default: stdout)")
        return sub

    def with_password(sub: argparse.ArgumentParser) -> argparse.ArgumentParser:
        group = sub.add_mutually_exclusive_group(required=True)
        group.add_argument("-p", "--password", help="Database password")
        group.add_argument("--password-file", help="File whose first line is the database password")
        return sub

    decrypt = with_password(with_io(commands.add_parser("decrypt", help="Decrypt a CMS message")))
    decrypt.set_defaults(handler=cmd_decrypt)

    sign = with_password(with_io(commands.add_parser("sign", help="Create a detached signature")))
    sign.add_argument("-N", "--signer", action="append", required=True, help="Signer identifier (repeatable)")
    sign.set_defaults(handler=cmd_sign)

    encrypt = with_io(commands.add_parser("encrypt", help="Encrypt for recipients"))
    encrypt.add_argument("-r", "--recipient", action="append", required=True, help="Recipient identifier (repeatable)")
    encrypt.set_defaults(handler=cmd_encrypt)

    verify = commands.add_parser("verify", help="Verify a detached signature")
    verify.add_argument("-c", "--content", required=True, help="File holding the signed content")
    verify.add_argument("-s", "--signature", help="Signature file (default: stdin)")
    verify.add_argument("-o", "--output", help="Report file (default: stdout)")
    verify.set_defaults(handler=cmd_verify)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = {
        "program": args.program,
        "database_dir": args.database_dir,
        "timeout": args.timeout,
    }
    try:
        settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    level = "INFO" if args.verbose else settings.log_level
    setup_logging(json_output=args.json_logs or settings.log_json, level=level)

    # the tool's stderr goes straight to ours, not to the log
    tool = SmimeTool(settings, sink=StreamDiagnosticSink())
    try:
        return args.handler(tool, args)
    except ToolFailureError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (SmimeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
