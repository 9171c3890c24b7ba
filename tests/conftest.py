import pytest

from sketchboard.config.loaders import clear_config_cache, get_grammar
from sketchboard.prompts import loader as prompt_loader
from sketchboard.records import AttributeRecord, Character, Location, SubjectKind


@pytest.fixture(autouse=True)
def _fresh_caches():
    clear_config_cache()
    prompt_loader.clear_cache()
    yield
    clear_config_cache()
    prompt_loader.clear_cache()


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def brief_sketch():
    return get_grammar("brief-sketch")


@pytest.fixture()
def high_fidelity():
    return get_grammar("high-fidelity-form")


@pytest.fixture()
def six_section():
    return get_grammar("six-section-technical")


@pytest.fixture()
def mara():
    return Character(
        name="Mara",
        attributes=AttributeRecord(
            subject_kind=SubjectKind.HUMAN,
            face_shape="oval face",
            hair="black wavy hair",
            eye_color="brown",
            eye_shape="almond",
            clothing="blue coat",
            age="early 30s",
            gender="Female",
        ),
    )


@pytest.fixture()
def old_library():
    return Location(name="Old Library")
