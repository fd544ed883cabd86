# run_app.py
import os
import sys

import streamlit.web.cli as stcli

APP_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "app.py")


def build_argv(extra_args=()):
    return ["streamlit", "run", APP_PATH, "--global.developmentMode=false", *extra_args]


def main(argv=None):
    # Headless: the app is opened from a browser, never auto-launched
    os.environ.setdefault("STREAMLIT_SERVER_HEADLESS", "true")
    sys.argv = build_argv(sys.argv[1:] if argv is None else argv)
    return stcli.main()


if __name__ == "__main__":
    sys.exit(main())
