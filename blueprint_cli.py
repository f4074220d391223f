"""
Generate, copy or show tryout blueprints stored in Supabase.

Run: python blueprint_cli.py generate PACKAGE_ID --parent skd --total 110 --mode ratio
     python blueprint_cli.py copy-master PACKAGE_ID INSTITUTION_ID
     python blueprint_cli.py show PACKAGE_ID
"""
import argparse
import logging
import sys

from db import SupabaseCategoryRepo, build_service, get_supabase_uncached
from tryout.apportion import WEIGHT_MODES, WeightPolicy
from tryout.blueprint import total_questions
from tryout.errors import ValidationError

logger = logging.getLogger(__name__)


def print_entries(entries, categories: SupabaseCategoryRepo) -> None:
    print("-" * 60)
    for e in entries:
        cat = categories.get(e.category_id)
        label = f"{cat.name} ({cat.slug})" if cat else e.category_id
        grade = f"  passing={e.passing_grade}" if e.passing_grade is not None else ""
        print(f"  {e.question_count:4d}  {label}{grade}")
    print("-" * 60)
    print(f"  {total_questions(entries):4d}  total")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Manage tryout blueprints.")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Allocate questions over the children of a parent category")
    gen.add_argument("package_id")
    gen.add_argument("--parent", required=True, help="Parent category id or slug (e.g. skd)")
    gen.add_argument("--total", type=int, required=True, help="Total questions in the package")
    gen.add_argument("--mode", choices=WEIGHT_MODES, default="stock", help="Weight by stock or ratio preset")
    gen.add_argument("--preset", default=None, help="Ratio preset name (default: parent slug)")
    gen.add_argument("--no-minimum", action="store_true", help="Do not reserve one question per category")

    copy = sub.add_parser("copy-master", help="Replace a package blueprint with an institution's master")
    copy.add_argument("package_id")
    copy.add_argument("institution_id")

    show = sub.add_parser("show", help="Print a package blueprint")
    show.add_argument("package_id")

    args = parser.parse_args(argv)

    client = get_supabase_uncached()
    service = build_service(client)
    categories = SupabaseCategoryRepo(client)

    if args.command == "show":
        entries = service.get_blueprint(args.package_id)
        print_entries(entries, categories)
        if entries:
            print(f"  default duration: {service.default_duration(entries)} min")
        return 0

    if args.command == "copy-master":
        outcome = service.apply_master_blueprint(args.package_id, args.institution_id)
    else:
        parent = categories.get(args.parent) or categories.by_slug(args.parent)
        if parent is None:
            print(f"Parent category not found: {args.parent}")
            return 1
        try:
            policy = WeightPolicy(mode=args.mode, preset=args.preset)
        except ValidationError as e:
            print(f"Error: {e}")
            return 1
        outcome = service.generate_blueprint(
            args.package_id, parent.id, args.total, policy, reserve_one=not args.no_minimum
        )

    if not outcome.ok:
        print(f"Error: {outcome.message}")
        return 1
    print_entries(outcome.entries, categories)
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    sys.exit(main())
