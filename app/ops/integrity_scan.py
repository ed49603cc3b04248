from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, dataclass, field
from itertools import groupby

from app.millstock.core.config import settings
from app.millstock.db.session import build_engine, build_session_factory
from app.ops.integrity_checks import (
    SEVERITY_CRITICAL,
    SEVERITY_WARN,
    IntegrityFinding,
    resolve_warehouses,
    run_integrity_checks,
)

EXIT_OK = 0
EXIT_CRITICAL = 1
EXIT_DISABLED = 2


@dataclass
class ScanReport:
    warehouses: list[str]
    findings: list[IntegrityFinding] = field(default_factory=list)

    def count(self, severity: str) -> int:
        return sum(1 for finding in self.findings if finding.severity == severity)

    @property
    def summary(self) -> dict:
        return {
            "total": len(self.findings),
            "critical": self.count(SEVERITY_CRITICAL),
            "warn": self.count(SEVERITY_WARN),
        }

    def as_json(self) -> str:
        payload = {
            "summary": self.summary,
            "warehouses_scanned": len(self.warehouses),
            "findings": [asdict(finding) for finding in self.findings],
        }
        return json.dumps(payload, indent=2, default=str)

    def as_text(self) -> str:
        summary = self.summary
        lines = [
            "Stock Integrity Scan",
            f"Warehouses scanned: {len(self.warehouses)}",
            f"Total findings: {summary['total']}",
            f"CRITICAL: {summary['critical']}",
            f"WARN: {summary['warn']}",
        ]
        for warehouse_id, findings in groupby(self.findings, key=lambda finding: finding.warehouse_id):
            lines.append("")
            lines.append(f"warehouse {warehouse_id}")
            for finding in findings:
                lines.append(
                    f"  [{finding.severity}] {finding.check_id} {finding.entity}={finding.entity_id or '-'} "
                    f"{finding.message}"
                )
                if finding.details:
                    lines.append(f"    details={json.dumps(finding.details, default=str)}")
        return "\n".join(lines)


def scan(warehouse: str, *, database_url: str | None = None) -> ScanReport:
    engine = build_engine(database_url)
    try:
        with build_session_factory(engine)() as db:
            report = ScanReport(warehouses=resolve_warehouses(db, warehouse))
            for warehouse_id in report.warehouses:
                report.findings.extend(run_integrity_checks(db, warehouse_id))
    finally:
        engine.dispose()
    return report


def run_scan(warehouse: str, output_format: str, fail_on_critical: bool, *, database_url: str | None = None) -> int:
    if not settings.OPS_ENABLE_INTEGRITY_SCAN:
        print("Integrity scan disabled by OPS_ENABLE_INTEGRITY_SCAN.", file=sys.stderr)
        return EXIT_DISABLED
    report = scan(warehouse, database_url=database_url)
    print(report.as_json() if output_format == "json" else report.as_text())
    if fail_on_critical and report.count(SEVERITY_CRITICAL):
        return EXIT_CRITICAL
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check stock counters and transfers against ledger invariants")
    parser.add_argument("--warehouse", default="all", help="Warehouse ID or 'all'")
    parser.add_argument("--format", choices=["json", "text"], default="text")
    parser.add_argument("--fail-on-critical", action="store_true")
    args = parser.parse_args(argv)
    return run_scan(args.warehouse, args.format, args.fail_on_critical)


if __name__ == "__main__":
    raise SystemExit(main())
