# SPDX-License-Identifier: MIT
"""
MemoryLink - Command Line Interface

This CLI provides:
- memorylink version
- memorylink scan <path>... --format {text,json}
- memorylink capture --key <conflict key> [--content TEXT | stdin]
- memorylink gate [--mode active|inactive] [--bypass REASON] [--json]
- memorylink audit verify
- memorylink quarantine {list,show,release}
- memorylink bypass {list,create,remove}
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .audit.logger import verify_audit_chain
from .core.exceptions import ExitCode, MemoryLinkError
from .core.paths import MAX_FILE_SIZE, MEMORYLINK_DIR
from .core.redaction import create_safe_preview, mask_line_secret, mask_secret
from .gate.bypass import create_bypass, list_bypasses, remove_bypass
from .gate.engine import GateOptions, execute_gate
from .gate.rules import RULES
from .quarantine.config import get_pattern_stats
from .quarantine.context import should_skip_file
from .quarantine.detector import detect_secrets
from .quarantine.release import get_quarantine_details, list_quarantined, release_from_quarantine
from .storage.capture import capture_memory

logger = logging.getLogger(__name__)

_SKIP_DIRS = {".git", MEMORYLINK_DIR, "node_modules", "__pycache__", ".venv", "venv"}
CONTEXT_LENGTH = 120


def main(argv=None):
    argv = argv if argv is not None else sys.argv[1:]
    p = argparse.ArgumentParser(prog="memorylink", description="MemoryLink secret gate")
    p.add_argument("-v", "--version", action="store_true", help="print version and exit")
    p.add_argument("--verbose", action="store_true", help="enable debug logging")
    p.add_argument("--cwd", default=".", help="project root (default: current directory)")

    sub = p.add_subparsers(dest="cmd")
    sub.add_parser("version", help="print version")

    sp = sub.add_parser("scan", help="scan files for secrets")
    sp.add_argument("paths", nargs="*", default=["."], help="files or directories to scan")
    sp.add_argument("--format", choices=["text", "json"], default="text", help="output format (default: text)")

    cp = sub.add_parser("capture", help="capture a memory record")
    cp.add_argument("--key", required=True, help="conflict key (topic) of the memory")
    cp.add_argument("--content", help="memory text (read from stdin when omitted)")
    cp.add_argument("--evidence", choices=["E0", "E1"], default="E0", help="evidence level (default: E0)")
    cp.add_argument("--tag", action="append", dest="tags", help="purpose tag (repeatable)")
    cp.add_argument("--file", dest="file_path", help="file the content came from")

    gp = sub.add_parser("gate", help="run the CI / pre-commit gate")
    gp.add_argument("--rule", choices=list(RULES), default=RULES[0], help="gate rule")
    gp.add_argument("--mode", choices=["active", "inactive"], help="override block mode")
    gp.add_argument("--bypass", dest="bypass_reason", metavar="REASON", help="create a bypass with this reason")
    gp.add_argument("--bypass-hours", type=float, help="bypass lifetime in hours (default: 24)")
    gp.add_argument("--severity", choices=["red", "yellow"], help="only report this tier")
    gp.add_argument("--validity", choices=["active", "inactive", "unknown"], help="only report this validity")
    gp.add_argument("--json", action="store_true", help="print JSON output")

    ap = sub.add_parser("audit", help="audit log tools")
    audit_sub = ap.add_subparsers(dest="audit_cmd")
    vp = audit_sub.add_parser("verify", help="verify the audit hash chain")
    vp.add_argument("--json", action="store_true", help="print JSON output")

    qp = sub.add_parser("quarantine", help="inspect or release quarantined items")
    q_sub = qp.add_subparsers(dest="quarantine_cmd")
    q_sub.add_parser("list", help="list quarantined items")
    show = q_sub.add_parser("show", help="decrypt and show one item")
    show.add_argument("record_id")
    rel = q_sub.add_parser("release", help="delete an item from quarantine")
    rel.add_argument("record_id")
    rel.add_argument("--reason", help="why the item is released")

    bp = sub.add_parser("bypass", help="manage gate bypasses")
    b_sub = bp.add_subparsers(dest="bypass_cmd")
    b_sub.add_parser("list", help="list live bypasses")
    bc = b_sub.add_parser("create", help="create a bypass")
    bc.add_argument("reason")
    bc.add_argument("--hours", type=float, help="lifetime in hours (default: 24)")
    bc.add_argument("--pattern", dest="pattern_id", help="limit to one pattern id")
    bc.add_argument("--file", dest="file_path", help="limit to one file")
    br = b_sub.add_parser("remove", help="remove bypasses")
    br.add_argument("--index", type=int, help="position in `bypass list`")
    br.add_argument("--pattern", dest="pattern_id", help="remove bypasses for this pattern")
    br.add_argument("--file", dest="file_path", help="remove bypasses for this file")

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(message)s")

    if args.version or args.cmd == "version":
        print(__version__)
        return 0

    handlers = {
        "scan": handle_scan_command,
        "capture": handle_capture_command,
        "gate": handle_gate_command,
        "audit": handle_audit_command,
        "quarantine": handle_quarantine_command,
        "bypass": handle_bypass_command,
    }
    handler = handlers.get(args.cmd)
    if handler is None:
        p.print_help()
        return 0

    try:
        return handler(args)
    except MemoryLinkError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code


def iter_scan_files(paths, cwd="."):
    """Expand files and directories, relative to ``cwd``, into the files to scan."""
    for raw in paths:
        path = Path(cwd) / raw
        if path.is_file():
            yield path
            continue
        if not path.is_dir():
            logger.warning("Skipping missing path %s", path)
            continue
        for candidate in sorted(path.rglob("*")):
            if candidate.is_file() and not _SKIP_DIRS.intersection(candidate.relative_to(path).parts[:-1]):
                yield candidate


def project_relative(file_path, cwd) -> str:
    """``file_path`` relative to the project root, or as given when outside it."""
    try:
        return file_path.resolve().relative_to(Path(cwd).resolve()).as_posix()
    except ValueError:
        return str(file_path)


def scan_file(file_path, cwd):
    """Return the detection for one file, or None if it was skipped."""
    display = project_relative(file_path, cwd)
    if should_skip_file(display):
        return None
    try:
        if file_path.stat().st_size > MAX_FILE_SIZE:
            logger.warning("Skipping %s: larger than %d bytes", display, MAX_FILE_SIZE)
            return None
        content = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Skipping %s: %s", display, e)
        return None
    result = detect_secrets(content, file_path=display, cwd=cwd)
    if not result.found:
        return None
    finding = result.to_dict()
    finding["file"] = display
    line = content.count("\n", 0, result.position or 0) + 1
    finding["line"] = line
    finding["preview"] = mask_secret(result.match or "")
    source_line = content.split("\n")[line - 1]
    masked_line = mask_line_secret(source_line, result.match or "")
    if masked_line != source_line:
        finding["context"] = create_safe_preview(masked_line, CONTEXT_LENGTH)
    return finding


def handle_scan_command(args):
    """Handle the scan subcommand."""
    findings = []
    for file_path in iter_scan_files(args.paths, args.cwd):
        finding = scan_file(file_path, args.cwd)
        if finding:
            findings.append(finding)

    blocking = [f for f in findings if f["severity"] == "error"]
    if args.format == "json":
        print(json.dumps({
            "tool": "memorylink",
            "version": __version__,
            "patterns": get_pattern_stats(args.cwd),
            "findings": findings,
        }, indent=2))
    else:
        print("🔍 MemoryLink scan")
        for finding in findings:
            icon = "🔴" if finding["severity"] == "error" else "🟡"
            print(f"{icon} {finding['file']}:{finding['line']} {finding['pattern_name']} "
                  f"(confidence {finding['confidence']}) {finding['preview']}")
            if finding.get("context"):
                print(f"    {finding['context']}")
        if findings:
            print(f"\n  Findings: {len(findings)} ({len(blocking)} blocking)")
        else:
            print("  ✅ No secrets found")
    return int(ExitCode.FAILURE if blocking else ExitCode.SUCCESS)


def handle_capture_command(args):
    """Handle the capture subcommand."""
    content = args.content if args.content is not None else sys.stdin.read()
    record = capture_memory(
        args.cwd,
        content,
        args.key,
        evidence_level=args.evidence,
        purpose_tags=args.tags,
        file_path=args.file_path,
    )
    if record.is_quarantined:
        print(f"⚠️ Secret detected - {record.id} captured as QUARANTINED")
        print(f"  Quarantine: {record.quarantine_ref}")
    else:
        print(f"✅ Captured {record.id}")
    return 0


def handle_gate_command(args):
    """Handle the gate subcommand."""
    options = GateOptions(
        rule=args.rule,
        mode=args.mode,
        severity=args.severity,
        validity=args.validity,
        bypass_reason=args.bypass_reason,
        bypass_hours=args.bypass_hours,
        json=args.json,
    )
    result, output = execute_gate(args.cwd, options)
    stream = sys.stderr if result.error and not args.json else sys.stdout
    print(output, file=stream)
    return result.exit_code


def handle_audit_command(args):
    """Handle the audit subcommand."""
    if args.audit_cmd != "verify":
        print("usage: memorylink audit verify", file=sys.stderr)
        return int(ExitCode.ERROR)
    verification = verify_audit_chain(args.cwd)
    if args.json:
        print(json.dumps(verification.to_dict(), indent=2))
    elif verification.valid:
        print(f"✅ Audit chain valid ({verification.event_count} events)")
    else:
        print(f"❌ Audit chain broken ({verification.event_count} events)")
        for error in verification.errors:
            print(f"  - {error}")
    return int(ExitCode.SUCCESS if verification.valid else ExitCode.FAILURE)


def handle_quarantine_command(args):
    """Handle the quarantine subcommand."""
    if args.quarantine_cmd == "show":
        details = get_quarantine_details(args.cwd, args.record_id)
        metadata = details["metadata"] or {}
        print(f"Record ID: {args.record_id}")
        print(f"  Pattern:     {metadata.get('pattern_id', 'Unknown')}")
        print(f"  Quarantined: {metadata.get('quarantined_at', 'Unknown')}")
        print("  Content (decrypted):")
        for number, line in enumerate(details["content"].splitlines()[:20], start=1):
            print(f"  {number:>3} | {line}")
        return 0

    if args.quarantine_cmd == "release":
        release_from_quarantine(args.cwd, args.record_id, args.reason)
        print(f"✅ Released {args.record_id} from quarantine")
        return 0

    items = list_quarantined(args.cwd)
    if not items:
        print("✅ No quarantined items found")
        return 0
    print(f"Found {len(items)} quarantined item(s):")
    for item in items:
        print(f"  {item.id}")
        print(f"    Pattern:     {item.pattern_id or 'Unknown'}")
        print(f"    Quarantined: {item.quarantined_at}")
        print(f"    Size:        {item.size} bytes")
        print(f"    Encrypted:   {'✅ Yes' if item.encrypted else '❌ No'}")
    return 0


def handle_bypass_command(args):
    """Handle the bypass subcommand."""
    if args.bypass_cmd == "create":
        bypass = create_bypass(args.cwd, args.reason, args.hours, args.pattern_id, args.file_path)
        print(f"✅ Bypass created, expires {bypass.expires_at}")
        return 0

    if args.bypass_cmd == "remove":
        removed = remove_bypass(args.cwd, index=args.index, pattern_id=args.pattern_id, file_path=args.file_path)
        print(f"Removed {removed} bypass(es)")
        return 0

    bypasses = list_bypasses(args.cwd)
    if not bypasses:
        print("No active bypasses")
        return 0
    for index, bypass in enumerate(bypasses):
        scope = bypass.pattern_id or bypass.file_path or "global"
        print(f"  [{index}] {bypass.reason} (scope: {scope}, expires {bypass.expires_at}, by {bypass.created_by})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
