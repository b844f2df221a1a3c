"""
Top-level entry point: python -m stateful_migrator <command>

Commands:
    run        -- start the backup and restore controllers
    reconcile  -- one reconcile pass for a single StatefulMigration
"""

import sys


USAGE = """\
usage: python -m stateful_migrator <command>

commands:
  run         Start the migration controllers (fan-out + propagation)
  reconcile   Reconcile a single StatefulMigration once: reconcile <namespace> <name>

Run 'python -m stateful_migrator <command> --help' for command-specific options.
"""


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    command, argv = sys.argv[1], sys.argv[2:]

    if command == "run":
        from .cli import main_run
        main_run(argv)
    elif command == "reconcile":
        from .cli import main_reconcile
        main_reconcile(argv)
    else:
        print(f"Unknown command: {command}\n")
        print(USAGE)
        sys.exit(1)


if __name__ == "__main__":
    main()
