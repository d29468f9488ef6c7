from immutables import Map
from pydantic import BaseModel

from pystorekit import to_dict, to_immutable, to_pydantic
from pystorekit.immutable_utils import find_mutable


class Profile(BaseModel):
    name: str
    tags: list = []


def test_to_immutable_converts_nested_containers():
    frozen = to_immutable({"users": [{"name": "ann", "roles": {"admin"}}]})

    assert frozen == Map(users=(Map(name="ann", roles=frozenset({"admin"})),))


def test_to_immutable_keeps_identity_when_already_immutable():
    state = Map(items=(Map(id=1),), name="x")

    assert to_immutable(state) is state


def test_to_immutable_converts_models():
    assert to_immutable(Profile(name="ann", tags=["a"])) == Map(name="ann", tags=("a",))


def test_to_dict_and_to_pydantic():
    state = Map(name="ann", tags=("a", "b"))

    assert to_dict(state) == {"name": "ann", "tags": ["a", "b"]}
    assert to_pydantic(state, Profile) == Profile(name="ann", tags=["a", "b"])


def test_find_mutable_reports_path():
    assert find_mutable(Map(a=Map(b=(1, Map(c=2))))) is None

    path, value = find_mutable(Map(a=Map(b=(1, [2]))))
    assert path == "state.a.b[1]"
    assert value == [2]
