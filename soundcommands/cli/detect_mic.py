"""
Liste les peripheriques micro disponibles.

Pourquoi: aider l'utilisateur a trouver l'index du micro a passer aux CLI.
"""

from __future__ import annotations

from soundcommands.recording import list_input_devices


def main() -> None:
    for index, name, channels in list_input_devices():
        print(f"{index}: {name} (inputs={channels})")


if __name__ == "__main__":
    main()
