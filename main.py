#!/usr/bin/env python3
"""
Outreach CRM - Interactive Menu Launcher
Run this file to access all CLI commands through a simple menu.

Usage:
    python main.py
"""

import subprocess
import sys
import os

PYTHON = sys.executable
CRM = [PYTHON, "outreachcrm/cli/main.py"]

# Project root on PYTHONPATH so 'outreachcrm' package is importable
ENV = os.environ.copy()
ENV["PYTHONPATH"] = os.path.dirname(os.path.abspath(__file__))


def run(args: list[str]):
    """Run a CLI command and return to menu when done."""
    print()
    subprocess.run(CRM + args, env=ENV)
    print()
    input("  Press Enter to return to menu...")


def prompt(label: str, required: bool = True) -> str:
    """Prompt user for input. Returns empty string if optional and skipped."""
    while True:
        value = input(f"  {label}: ").strip()
        if value:
            return value
        if not required:
            return ""
        print("  (required - please enter a value)")


def prompt_optional(label: str) -> str:
    return prompt(f"{label} (optional, Enter to skip)", required=False)


def clear():
    os.system("cls" if os.name == "nt" else "clear")


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def contacts_list():
    args = ["contacts", "list"]
    q = prompt_optional("Search name / phone / email")
    s = prompt_optional("Status (Incomunicado/Comunicado/all)")
    l = prompt_optional("Locality")
    if q: args += ["--search", q]
    if s: args += ["--status", s]
    if l: args += ["--locality", l]
    run(args)

def contacts_show():
    cid = prompt("Contact ID")
    run(["contacts", "show", cid])

def message():
    cid = prompt("Contact ID")
    args = ["message", cid]
    who = prompt_optional("Your name (default: OPERATOR_NAME)")
    if who: args += ["--as", who]
    run(args)

def localities():
    run(["localities"])

def stats():
    run(["stats"])

def watch():
    args = ["watch"]
    l = prompt_optional("Locality")
    if l: args += ["--locality", l]
    run(args)


# =============================================================================
# MENU LAYOUT
# =============================================================================

MENU = [
    ("CONTACTS", [
        ("List contacts",                contacts_list),
        ("Show contact details",         contacts_show),
        ("Live contact list",            watch),
    ]),
    ("OUTREACH", [
        ("Send WhatsApp message",        message),
    ]),
    ("REPORTS", [
        ("Localities",                   localities),
        ("Contacted / not contacted",    stats),
    ]),
]


def print_menu():
    clear()
    print("=" * 50)
    print("   OUTREACH CRM - COMMAND CENTRE")
    print("=" * 50)

    n = 1
    numbering = {}  # maps display number -> handler function

    for section, commands in MENU:
        print(f"\n  {section}")
        print(f"  {'-' * len(section)}")
        for label, handler in commands:
            print(f"  {n:>2}.  {label}")
            numbering[n] = handler
            n += 1

    print("\n" + "=" * 50)
    print("   0.  Exit")
    print("=" * 50)
    return numbering


def main():
    while True:
        numbering = print_menu()

        try:
            choice = input("\n  Select a command: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\n  Goodbye!\n")
            break

        if choice == "0" or choice.lower() in ("q", "quit", "exit"):
            print("\n  Goodbye!\n")
            break

        try:
            n = int(choice)
            if n in numbering:
                clear()
                numbering[n]()
            else:
                print(f"\n  Invalid selection: {choice}")
                input("  Press Enter to continue...")
        except ValueError:
            print("\n  Please enter a number.")
            input("  Press Enter to continue...")


if __name__ == "__main__":
    main()
