"""
Command-line interface for the dot pattern mesh generator.
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from dotmesh import Config, DotMeshGenerator


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description="Dot Pattern to 3D Mesh Generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate a mesh from a dot pattern")
    gen_parser.add_argument("pattern", type=str, help="Pattern file (.npy or text grid)")
    gen_parser.add_argument("--output", type=str, required=True, help="Output mesh file")
    gen_parser.add_argument("--format", type=str, choices=["obj", "stl", "ply"], help="Output format")
    gen_parser.add_argument("--level", type=str, choices=["low", "medium", "high"], help="Optimization level")
    gen_parser.add_argument("--no-base", action="store_true", help="Do not generate a base plate")
    gen_parser.add_argument("--report", type=str, help="Write a quality report (JSON) to this path")
    gen_parser.add_argument("--config", type=str, help="Path to config file")
    gen_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    # Assess command
    assess_parser = subparsers.add_parser("assess", help="Assess printability of a mesh or pattern")
    assess_parser.add_argument("input", type=str, help="OBJ mesh or pattern file")
    assess_parser.add_argument("--model-id", type=str, help="Model identifier for the report")
    assess_parser.add_argument("--output", type=str, help="Report output path (JSON)")
    assess_parser.add_argument("--config", type=str, help="Path to config file")
    assess_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    # Compare command
    compare_parser = subparsers.add_parser("compare", help="Compare two quality reports")
    compare_parser.add_argument("first", type=str, help="First report (JSON)")
    compare_parser.add_argument("second", type=str, help="Second report (JSON)")
    compare_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    # Estimate command
    estimate_parser = subparsers.add_parser("estimate", help="Estimate print time and material")
    estimate_parser.add_argument("pattern", type=str, help="Pattern file (.npy or text grid)")
    estimate_parser.add_argument("--config", type=str, help="Path to config file")
    estimate_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    # Config command
    config_parser = subparsers.add_parser("config", help="Write the default configuration")
    config_parser.add_argument("--output", type=str, default="config.yaml", help="Output YAML path")
    config_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    return parser


def _load_mesh(generator: DotMeshGenerator, path: Path):
    """Read an OBJ file, or generate the mesh of a pattern file."""
    if path.suffix.lower() == ".obj":
        from meshing.export import read_obj
        return read_obj(path.read_text(encoding="utf-8"))
    return generator.generate(generator.load_pattern(path))


def main(argv=None):
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    setup_logging(getattr(args, "verbose", False))
    logger = logging.getLogger(__name__)

    # Load config
    config = None
    if hasattr(args, "config") and args.config:
        config = Config.from_yaml(args.config)
    else:
        config = Config()

    generator = DotMeshGenerator(config)

    try:
        if args.command == "generate":
            if args.no_base:
                config.generation = replace(config.generation, generate_base=False)

            pattern = generator.load_pattern(args.pattern)
            mesh = generator.generate(pattern)
            mesh = generator.optimize(mesh, args.level).mesh
            output_path = generator.export(mesh, args.output, format=args.format)
            logger.info(f"Exported mesh to: {output_path}")

            if args.report:
                report = generator.assess(mesh, model_id=Path(args.pattern).stem)
                report_path = Path(args.report)
                report_path.parent.mkdir(parents=True, exist_ok=True)
                report_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
                logger.info(f"Quality score {report.overall_score}, report saved to: {report_path}")

        elif args.command == "assess":
            input_path = Path(args.input)
            mesh = _load_mesh(generator, input_path)
            report = generator.assess(mesh, model_id=args.model_id or input_path.stem)

            if args.output:
                Path(args.output).write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
                logger.info(f"Report saved to: {args.output}")

            print("\nQuality Report:")
            print("-" * 40)
            print(f"  Overall score: {report.overall_score}")
            for key, value in report.geometry.to_dict().items():
                print(f"  {key}: {value}")
            print(f"  supportNeed: {report.printability.support_need}")
            print(f"  minThickness: {report.printability.wall_thickness.min_thickness:.3f}")
            for warning in report.warnings:
                print(f"  [{warning.severity}] {warning.message}")

        elif args.command == "compare":
            from printability import QualityReport, compare_quality

            reports = []
            for path in (args.first, args.second):
                with open(path, "r", encoding="utf-8") as f:
                    reports.append(QualityReport.from_dict(json.load(f)))

            comparison = compare_quality(reports[0], reports[1])
            print(f"\nBetter model: {comparison.better_model}")
            print(f"Score difference: {comparison.overall_score_difference:+d}")
            for line in comparison.improvements:
                print(f"  + {line}")
            for line in comparison.regressions:
                print(f"  - {line}")

        elif args.command == "estimate":
            pattern = generator.load_pattern(args.pattern)
            estimate = generator.estimate(pattern)
            print("\nPrint Estimates:")
            print("-" * 40)
            print(f"  Print time: {estimate.print_time}")
            print(f"  Material: {estimate.material}")
            print(f"  Cost: {estimate.cost_text}")

        elif args.command == "config":
            config.to_yaml(args.output)
            logger.info(f"Default configuration written to: {args.output}")

    except Exception as e:
        logger.error(f"Error: {e}")
        raise


if __name__ == "__main__":
    main()
