import os
import shutil
from functools import wraps

from nox import session as nox_session
from nox.project import dependency_groups, load_toml
from nox.sessions import Session

TYPE_CHECKING = False
if TYPE_CHECKING:
    from typing import Any, Callable, Dict, Optional, Sequence


ROOT_DIR: str = os.path.dirname(os.path.abspath(__file__))
MANIFEST_FILENAME = "pyproject.toml"
PROJECT_MANIFEST = load_toml(MANIFEST_FILENAME)
PROJECT_NAME: str = PROJECT_MANIFEST["project"]["name"]
PROJECT_NAME_NORMALIZED: str = PROJECT_NAME.replace("-", "_").replace(" ", "_")

PROJECT_CODES_DIR: str = os.path.join("src", PROJECT_NAME_NORMALIZED)
DIST_DIR: str = os.path.join(ROOT_DIR, "dist")
BUILD_DIR: str = os.path.join(ROOT_DIR, "build")
TEST_DIR: str = os.path.join(ROOT_DIR, "tests")

DEFAULT_SESSION_KWARGS = {
    "reuse_venv": True,
    "venv_backend": "uv",
}


def uv_install_group_dependencies(session: Session, dependency_group: str):
    dependencies = dependency_groups(PROJECT_MANIFEST, dependency_group)
    session.install(*dependencies)
    session.log(f"Installed dependencies: {dependencies} for {dependency_group}")


class AlteredSession(Session):
    """Session that installs a dependency group and applies default posargs."""

    __slots__ = ("session", "dependency_group", "default_posargs")

    def __init__(
        self,
        session: Session,
        dependency_group: "Optional[str]",
        default_posargs: "Sequence[str]",
    ):
        super().__init__(session._runner)
        self.session = session
        self.dependency_group = dependency_group
        self.default_posargs = default_posargs

    def run(self, *args, **kwargs):
        if self.dependency_group is not None:
            uv_install_group_dependencies(self, self.dependency_group)
        args = (*args, *(self.session.posargs or self.default_posargs))
        return self.session.run(*args, **kwargs)


def session(
    f: "Optional[Callable[..., Any]]" = None,
    /,
    dependency_group: "Optional[str]" = None,
    default_posargs: "Sequence[str]" = (),
    **kwargs: "Dict[str, Any]",
) -> "Callable[..., Any]":
    if f is None:
        return lambda f: session(
            f,
            dependency_group=dependency_group,
            default_posargs=default_posargs,
            **kwargs,
        )
    nox_session_kwargs = {
        **DEFAULT_SESSION_KWARGS,
        "name": f.__name__.replace("_", "-"),
        **kwargs,
    }

    @wraps(f)
    def wrapper(session: Session, *args, **kwargs):
        return f(AlteredSession(session, dependency_group, default_posargs), *args, **kwargs)

    return nox_session(wrapper, **nox_session_kwargs)


# `nox -s test` runs the whole suite, `nox -s test -- tests/test_cache.py -vv` runs one file
@session(dependency_group="test", default_posargs=[TEST_DIR, "-vv"])
def test(session: AlteredSession):
    session.run(shutil.which("uv"), "run", "python", "-m", "pytest")


@session(dependency_group="dev")
def clean(session: AlteredSession):
    for path in (BUILD_DIR, DIST_DIR):
        if os.path.exists(path):
            shutil.rmtree(path)
            session.log(f"Removed: {path}")

    for root, dirs, _ in os.walk(ROOT_DIR):
        for name in dirs:
            if name in ("__pycache__", ".pytest_cache") or name.endswith(".egg-info"):
                cache_dir = os.path.join(root, name)
                shutil.rmtree(cache_dir, ignore_errors=True)
                session.log(f"Removed cache directory: {cache_dir}")


@session(dependency_group="dev", default_posargs=[PROJECT_CODES_DIR, TEST_DIR])
def format(session: AlteredSession):
    session.run("uv", "tool", "run", "ruff", "format")


@session(dependency_group="dev", default_posargs=["check", ".", "--fix"])
def check(session: AlteredSession):
    session.run("uv", "tool", "run", "ruff")


@session(dependency_group="dev", default_posargs=["src", "--rcfile", MANIFEST_FILENAME])
def lint(session: AlteredSession):
    session.run("uv", "tool", "run", "pylint")


@session(dependency_group="dev", default_posargs=[PROJECT_CODES_DIR, "--check-untyped-defs"])
def type_check(session: AlteredSession):
    session.run("uv", "tool", "run", "mypy")


@session(dependency_group="dev")
def build(session: AlteredSession):
    session.run("uv", "build")


@session(dependency_group="dev", default_posargs=[PROJECT_CODES_DIR])
def no_print(session: AlteredSession):
    output = session.run("grep", "-rn", "print(", silent=True, success_codes=[0, 1])
    if output:
        session.error("Found print statements in the code")


@session(reuse_venv=False)
def test_client_install_run(session: AlteredSession):
    build(session)
    session.run(
        "uv",
        "run",
        "python",
        "-c",
        f"from {PROJECT_NAME_NORMALIZED} import IntelligenceEngine, __version__; "
        "print(f'IntelligenceEngine imported, version: {__version__}')",
    )


@session(dependency_group="dev")
def dev(session: AlteredSession):
    clean(session)
    format(session)
    check(session)
    test(session)


@session(dependency_group="dev")
def ci(session: AlteredSession):
    build(session)
    test(session)
