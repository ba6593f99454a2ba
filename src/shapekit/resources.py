from importlib import resources


def load_reference() -> str:
    with resources.files(__package__).joinpath("data/markup_reference.md").open("r", encoding="utf-8") as fh:
        return fh.read()
