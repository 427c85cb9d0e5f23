from __future__ import annotations

from survey_engine.UI import run_app


def main() -> None:
    """Launch the Streamlit survey UI."""

    run_app()


if __name__ == "__main__":
    main()
