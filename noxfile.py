import nox


nox.options.default_venv_backend = "uv"

@nox.session(python="3.13")
def test(session):
    session.install(".[test]")
    session.install("pytest-cov")
    session.run("uv", "pip", "list")
    session.run("pytest", "--durations=50", "tests", *session.posargs)


@nox.session(name="explorer")
def explorer(session):
    # Serve the interactive results explorer
    session.install("-e", ".[notebooks]")
    session.run("marimo", "run", "docs/marimo_notebooks/de_gsea_explorer.py", *session.posargs)
