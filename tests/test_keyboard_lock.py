from types import SimpleNamespace

import pytest

from invigilator.lockdown import keyboard_lock as keyboard_lock_module
from invigilator.lockdown.keyboard_lock import NoopKeyboardLock, PynputKeyboardLock, create_keyboard_lock


def key(vk):
    return SimpleNamespace(value=SimpleNamespace(vk=vk))


class FakeListener:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.started = False
        self.stopped = False
        self.suppressed = 0
        FakeListener.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def suppress_event(self):
        self.suppressed += 1


@pytest.fixture
def fake_keyboard(monkeypatch):
    FakeListener.instances = []
    kb = SimpleNamespace(
        Key=SimpleNamespace(esc=key(27), tab=key(9), f5=key(116), f11=key(122)),
        KeyCode=SimpleNamespace(from_char=lambda char: SimpleNamespace(vk=ord(char.upper()))),
        Listener=FakeListener,
    )
    monkeypatch.setattr(keyboard_lock_module, "_import_pynput_keyboard", lambda: kb)
    return kb


def test_key_names_map_to_virtual_key_codes(fake_keyboard):
    codes = PynputKeyboardLock()._key_codes(fake_keyboard, ["Escape", "F5", "Tab", "a", "PageUp"])

    assert codes == {27, 116, 9, ord("A")}


def test_windows_lock_suppresses_locked_keys(fake_keyboard, monkeypatch):
    monkeypatch.setattr(keyboard_lock_module.sys, "platform", "win32")
    lock = PynputKeyboardLock()

    lock.lock(["Escape", "F11"])

    listener = FakeListener.instances[0]
    assert lock.locked and listener.started
    event_filter = listener.kwargs["win32_event_filter"]
    assert event_filter(None, SimpleNamespace(vkCode=27)) is True
    assert event_filter(None, SimpleNamespace(vkCode=ord("A"))) is True
    assert listener.suppressed == 1

    lock.lock(["Escape"])
    assert len(FakeListener.instances) == 1

    lock.unlock()
    assert listener.stopped
    assert not lock.locked


def test_unsupported_platform_raises(fake_keyboard, monkeypatch):
    monkeypatch.setattr(keyboard_lock_module.sys, "platform", "linux")
    lock = PynputKeyboardLock()

    with pytest.raises(NotImplementedError):
        lock.lock(["Escape"])

    assert not lock.locked
    assert FakeListener.instances == []


def test_factory_falls_back_to_noop(fake_keyboard, monkeypatch):
    monkeypatch.setattr(keyboard_lock_module.sys, "platform", "linux")
    assert isinstance(create_keyboard_lock(), NoopKeyboardLock)

    monkeypatch.setattr(keyboard_lock_module.sys, "platform", "win32")
    assert isinstance(create_keyboard_lock(), PynputKeyboardLock)
    assert isinstance(create_keyboard_lock(enabled=False), NoopKeyboardLock)
