"""
CLI entry point, when used as a module: `python -m kubehook`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kubehook").
"""
from kubehook import cli

if __name__ == '__main__':
    cli.main()
