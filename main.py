from rich.pretty import pprint

from dendron import *

__prog__ = "demo"
__styles__ = {"code": "bold #FFB400"}


@command("greet", "hi")
def greet(name: str, times: int = 1):
    """Greet someone, possibly several times."""
    return " ".join([f"hello {name}"] * times)


@command
class Config:
    """Inspect and change settings."""

    def __init__(self):
        self.store = {}

    @handler
    def show(self):
        return dict(self.store)

    @command("set")
    def put(self, key: str, value: str):
        self.store[key] = value
        return value


registrar = Registrar(shell=True, fancy=True, colorful=True)


if __name__ == '__main__':
    registrar.initialize(greet, Config).check()
    if (value := registrar.invoke()) is not None:
        pprint(value)
