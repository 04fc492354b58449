from backend.careergate.identity import VISITOR_ID_KEY, ClientIdentity, generate_session_id
from backend.careergate.storage import JsonFileStorage, MemoryStorage


class RecordingStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.reads = []
        self.writes = []

    def get(self, key):
        self.reads.append(key)
        return super().get(key)

    def set(self, key, value):
        self.writes.append(key)
        super().set(key, value)


def test_visitor_id_survives_page_loads():
    durable = MemoryStorage()

    first = ClientIdentity(durable, MemoryStorage())
    second = ClientIdentity(durable, MemoryStorage())

    assert first.visitor_id == second.visitor_id
    assert first.visitor_id.startswith("visitor_")
    assert durable.get(VISITOR_ID_KEY) == first.visitor_id


def test_visitor_id_is_not_regenerated():
    durable = MemoryStorage({VISITOR_ID_KEY: "visitor_1_existing"})

    identity = ClientIdentity(durable, MemoryStorage())

    assert identity.get_or_create_visitor_id() == "visitor_1_existing"
    assert identity.visitor_id == "visitor_1_existing"


def test_each_identity_gets_a_new_session_id():
    durable = MemoryStorage()

    first = ClientIdentity(durable, MemoryStorage())
    second = ClientIdentity(durable, MemoryStorage())

    assert first.session_id != second.session_id
    assert first.session_id.startswith("session_")


def test_generate_session_id_touches_no_storage():
    durable = RecordingStorage()
    identity = ClientIdentity(durable, MemoryStorage())
    durable.reads.clear()
    durable.writes.clear()

    assert identity.generate_session_id() != identity.generate_session_id()
    assert generate_session_id() != generate_session_id()
    assert durable.reads == []
    assert durable.writes == []


def test_open_session_can_be_resumed():
    identity = ClientIdentity(MemoryStorage(), MemoryStorage(), session_id="session_1_abc")

    assert identity.session_id == "session_1_abc"


def test_json_file_storage_persists_between_instances(tmp_path):
    path = tmp_path / "client" / "storage.json"

    first = ClientIdentity(JsonFileStorage(path), MemoryStorage())
    second = ClientIdentity(JsonFileStorage(path), MemoryStorage())

    assert path.exists()
    assert first.visitor_id == second.visitor_id


def test_json_file_storage_ignores_corrupt_file(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{not json", encoding="utf-8")
    storage = JsonFileStorage(path)

    assert storage.get(VISITOR_ID_KEY) is None
    storage.set(VISITOR_ID_KEY, "visitor_2_fresh")
    assert JsonFileStorage(path).get(VISITOR_ID_KEY) == "visitor_2_fresh"
