import sys
import traceback

from hydro.dev.run_alarms import main as run_alarms


def main():
    """Frozen-build launcher; keeps the console open when startup fails."""
    try:
        run_alarms()
    except Exception:
        traceback.print_exc()
        if getattr(sys, "frozen", False):
            input("\nPress Enter to exit...")
        sys.exit(1)

if __name__ == "__main__":
    main()
