"""
Allow ``python -m git_automation`` as an alternative to the
``git-automation`` console script.
"""

from git_automation.cli import main


if __name__ == "__main__":
    main(prog_name="git-automation")
