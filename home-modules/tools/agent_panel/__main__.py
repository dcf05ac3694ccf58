"""Entry point for the `ap` command line tool."""

import sys


def main() -> int:
    """Main entry point."""
    from agent_panel.cli.commands import cli_main
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
