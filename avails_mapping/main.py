#!/usr/bin/env python
"""
Avails Mapping – CLI entry point.

Usage:
    # Convert an Avails sheet to XML
    python -m avails_mapping.main convert <sheet.xlsx|sheet.csv> [--output avails.xml]
        [--sheet Movies] [--version 1.7.3] [--provenance provenance.xlsx]
        [--config config.yaml]

    # Report the template version of a sheet
    python -m avails_mapping.main detect <sheet.xlsx|sheet.csv> [--sheet Movies]
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from avails_mapping.config import load_config, setup_logging
from avails_mapping.diagnostics import Severity, UnsupportedMapping
from avails_mapping.ingest import AvailsIngester
from avails_mapping.readers import read_sheet
from avails_mapping.versions import detect_version


def _convert(args, config) -> int:
    sheet = read_sheet(args.input_file, args.sheet or config["sheet_name"],
                       config["header_row"])
    ingester = AvailsIngester(
        template_version=args.version or config["template_version"]
    )
    result = ingester.ingest(sheet.rows, sheet.columns)

    out = args.output or config["output"]
    out_dir = os.path.dirname(out)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    result.write_xml(out)
    print(f"Wrote {out} (schema {result.config.schema_version}, "
          f"{len(result.root.children)} Avails)")

    report = args.provenance or config["provenance_report"]
    if report:
        result.write_provenance(report)
        print(f"Wrote provenance report {report}")

    errors = result.diagnostics.count(min_severity=Severity.ERROR)
    if errors:
        print(f"{errors} error(s) reported; see log for details")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Convert Avails spreadsheets to Avails XML"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # ---- convert ----
    p_conv = sub.add_parser("convert", help="Convert an Avails sheet to XML")
    p_conv.add_argument("input_file", help="Avails sheet (.xlsx or .csv)")
    p_conv.add_argument("--output", "-o", default=None,
                        help="Output XML path (default: avails.xml)")
    p_conv.add_argument("--sheet", default=None,
                        help="Sheet name (default: active sheet)")
    p_conv.add_argument("--version", default=None,
                        help="Declared template version, e.g. 1.7.3")
    p_conv.add_argument("--provenance", default=None,
                        help="Also write a provenance report (.xlsx)")
    p_conv.add_argument("--config", default=None,
                        help="Path to config YAML file")

    # ---- detect ----
    p_det = sub.add_parser("detect", help="Report a sheet's template version")
    p_det.add_argument("input_file", help="Avails sheet (.xlsx or .csv)")
    p_det.add_argument("--sheet", default=None,
                       help="Sheet name (default: active sheet)")
    p_det.add_argument("--config", default=None,
                       help="Path to config YAML file")

    args = parser.parse_args(argv)
    config = load_config(args.config)
    setup_logging(config["log_level"])

    if not os.path.exists(args.input_file):
        print(f"Error: File '{args.input_file}' not found.")
        sys.exit(1)

    if args.command == "detect":
        sheet = read_sheet(args.input_file, args.sheet or config["sheet_name"],
                           config["header_row"])
        print(detect_version(sheet.columns).value)
        return

    try:
        _convert(args, config)
    except UnsupportedMapping as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
