"""Stand-in for the CMS tool, used by the test suite.

Speaks the same command line as the real tool and keeps a toy
"database" in two JSON files inside the database directory:

    keys.json   {"passwords": {"<password>": ["<identity>", ...]}}
    certs.json  {"<identity>": {"subject": ..., "issuer": ..., "serial": ...}}

Encryption is a keyed XOR per recipient, signatures are JSON documents
carrying a SHA-256 digest. Nothing here is secure; it only has to be
reversible and consistent.

FAKE_CMSTOOL_BEHAVIOR switches on failure modes:
    fail          write a diagnostic and exit 3
    partial-fail  write some output, then fail
    signal        kill itself with SIGKILL
    hang          read input, then sleep for a long time
    no-read       exit 0 without reading stdin
"""

import argparse
import base64
import hashlib
import json
import os
import signal
import stat
import sys
import time


def fail(message, code=1):
    sys.stderr.write(f"fake-cmstool: {message}\n")
    sys.stderr.flush()
    sys.exit(code)


def keystream(identity, length):
    seed = hashlib.sha256(identity.encode("utf-8")).digest()
    out = bytearray()
    counter = 0
    while len(out) < length:
        out.extend(hashlib.sha256(seed + counter.to_bytes(4, "big")).digest())
        counter += 1
    return bytes(out[:length])


def xor(data, identity):
    return bytes(a ^ b for a, b in zip(data, keystream(identity, len(data))))


def load_json(dbdir, name):
    path = os.path.join(dbdir, name)
    if not os.path.exists(path):
        fail(f"database file {name} missing in {dbdir}", code=2)
    with open(path) as f:
        return json.load(f)


def unlocked_identities(dbdir, password):
    passwords = load_json(dbdir, "keys.json")["passwords"]
    if password not in passwords:
        fail("Bad database password")
    return passwords[password]


def do_encrypt(args, data):
    certs = load_json(args.d, "certs.json")
    envelope = {}
    for recipient in args.r:
        if recipient not in certs:
            fail(f"no certificate for recipient {recipient}")
        envelope[recipient] = base64.b64encode(xor(data, recipient)).decode("ascii")
    return json.dumps({"type": "enveloped", "recipients": envelope}).encode("utf-8")


def do_decrypt(args, data):
    identities = unlocked_identities(args.d, args.p)
    try:
        message = json.loads(data)
    except ValueError:
        fail("input is not an enveloped message")
    for recipient, payload in message.get("recipients", {}).items():
        if recipient in identities:
            return xor(base64.b64decode(payload), recipient)
    fail("no private key for any recipient")


def do_sign(args, data):
    if not args.T:
        fail("only detached signatures are supported")
    identities = unlocked_identities(args.d, args.p)
    certs = load_json(args.d, "certs.json")
    for signer in args.N:
        if signer not in identities or signer not in certs:
            fail(f"no signing key for {signer}")
    return json.dumps({
        "type": "signed",
        "signers": args.N,
        "digest": hashlib.sha256(data).hexdigest(),
    }).encode("utf-8")


def do_verify(args, data):
    if not args.c:
        fail("content file required for detached signatures")
    mode = stat.S_IMODE(os.stat(args.c).st_mode)
    if mode & 0o077:
        fail(f"content file {args.c} is readable by others ({oct(mode)})")
    with open(args.c, "rb") as f:
        content = f.read()
    try:
        signature = json.loads(data)
    except ValueError:
        fail("signature is not a CMS message")

    certs = load_json(args.d, "certs.json")
    valid = signature.get("digest") == hashlib.sha256(content).hexdigest()

    lines = [
        "contentType=signedData",
        f"signatureValid={'yes' if valid else 'no'}",
    ]
    for i, signer in enumerate(signature.get("signers", [])):
        cert = certs.get(signer)
        if cert is None:
            continue
        lines += [
            f"certificate[{i}].data.version=3",
            f"certificate[{i}].data.subject={cert['subject']}",
            f"certificate[{i}].data.issuerName={cert['issuer']}",
            f"certificate[{i}].data.serialNumber={cert['serial']}",
            f"signerInformation[{i}].digestAlgorithm=SHA-256",
            f"signerInformation[{i}].issuerName={cert['issuer']}",
            f"signerInformation[{i}].serialNumber={cert['serial']}",
        ]
    return ("\n".join(lines) + "\n").encode("utf-8")


def main():
    parser = argparse.ArgumentParser(prog="fake-cmstool")
    modes = parser.add_mutually_exclusive_group(required=True)
    modes.add_argument("-D", action="store_const", dest="mode", const="decrypt")
    modes.add_argument("-S", action="store_const", dest="mode", const="sign")
    modes.add_argument("-E", action="store_const", dest="mode", const="encrypt")
    modes.add_argument("-V", action="store_const", dest="mode", const="verify")
    parser.add_argument("-d", required=True)
    parser.add_argument("-p")
    parser.add_argument("-T", action="store_true")
    parser.add_argument("-N", action="append", default=[])
    parser.add_argument("-r", action="append", default=[])
    parser.add_argument("-c")
    args = parser.parse_args()

    behavior = os.environ.get("FAKE_CMSTOOL_BEHAVIOR", "")
    if behavior == "no-read":
        sys.exit(0)
    if behavior == "signal":
        os.kill(os.getpid(), signal.SIGKILL)

    data = sys.stdin.buffer.read()

    if behavior == "fail":
        fail("simulated failure\nsecond diagnostic line", code=3)
    if behavior == "partial-fail":
        sys.stdout.buffer.write(b"half-written output")
        sys.stdout.flush()
        fail("crashed halfway")
    if behavior == "hang":
        time.sleep(60)

    handlers = {
        "decrypt": do_decrypt,
        "sign": do_sign,
        "encrypt": do_encrypt,
        "verify": do_verify,
    }
    sys.stdout.buffer.write(handlers[args.mode](args, data))


if __name__ == "__main__":
    main()
