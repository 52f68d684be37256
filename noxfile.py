"""Nox sessions for the test suite, static checks and the provider isolation rule."""

import nox

PYTHON_VERSIONS = ["3.13", "3.14"]
SOURCES = ["src", "tests", "scripts", "noxfile.py"]

nox.options.sessions = ["tests", "lint", "typecheck", "check_isolation"]


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run unit and property tests with coverage.

    Extra arguments are passed to pytest, e.g. ``nox -s tests -- -k scheduler``.
    """
    session.install("-e", ".[test]")
    session.run(
        "pytest",
        "--cov=notification_relay",
        "--cov-report=term-missing:skip-covered",
        "--cov-fail-under=85",
        *session.posargs,
    )


@nox.session(python=PYTHON_VERSIONS[-1])
def lint(session: nox.Session) -> None:
    """Check style and formatting with ruff."""
    session.install("ruff")
    session.run("ruff", "check", *SOURCES)
    session.run("ruff", "format", "--check", *SOURCES)


@nox.session(python=PYTHON_VERSIONS[-1])
def typecheck(session: nox.Session) -> None:
    session.install("-e", ".[test]", "basedpyright")
    session.run("basedpyright")


@nox.session(python=PYTHON_VERSIONS[-1], name="format")
def format_sources(session: nox.Session) -> None:
    """Apply ruff fixes and formatting in place."""
    session.install("ruff")
    session.run("ruff", "check", "--fix", *SOURCES)
    session.run("ruff", "format", *SOURCES)


@nox.session(python=False)
def check_isolation(session: nox.Session) -> None:
    """Fail when a module outside plugins/ depends on a specific provider."""
    session.run("python3", "scripts/check_provider_isolation.py", *session.posargs)
