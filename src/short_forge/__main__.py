"""
Short Forge - Entry point for python -m short_forge
"""

if __name__ == "__main__":
    from short_forge.cli import cli

    cli()
