"""
Entry point for running ChickSex-AI as a module.

Usage:
    python -m chicksex_ai --help
    python -m chicksex_ai features --mass 58 --long-axis 57 --short-axis 43
    python -m chicksex_ai --provider dummy batch sample_eggs.csv --delay 0
    python -m chicksex_ai gui
"""
from .cli import app


if __name__ == "__main__":
    app()
