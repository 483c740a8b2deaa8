from importlib import metadata

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.doctest",
    "sphinx.ext.intersphinx",
    "sphinx.ext.viewcode",
]

templates_path = ["_templates"]

source_suffix = ".rst"

master_doc = "index"

# General information about the project.

project = "python-maybe-async"
copyright = "2023, Bill Huneke"
author = "Bill Huneke"

release = metadata.version(project)
# The short X.Y version.
version = ".".join(release.split(".")[:2])


language = "en"

pygments_style = "sphinx"
html_theme = "alabaster"
html_theme_options = {
    "description": "One coroutine, a blocking build and a non-blocking build",
    "github_user": "wahuneke",
    "github_repo": "python-maybe-async",
    "badge_branch": "main",
    "page_width": "1080px",
    "sidebar_width": "300px",
    "fixed_sidebar": "false",
}
html_sidebars = {"**": ["about.html", "localtoc.html", "relations.html", "searchbox.html"]}

autodoc_member_order = "bysource"

nitpicky = False
nitpick_ignore = ["py:class"]

texinfo_documents = [
    (
        master_doc,
        "python-maybe-async",
        "python-maybe-async Documentation",
        author,
        "python-maybe-async",
        "Generate the blocking and non-blocking builds of code written once as coroutines.",
        "Miscellaneous",
    )
]

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "pytest": ("https://docs.pytest.org/en/latest", None),
    "typer": ("https://typer.tiangolo.com", None),
}
