"""
Message store tests

Test Coverage:
1. Insert-or-ignore: duplicates return False and never overwrite
2. Generic queries (by id, by uid ordered by time, latest)
3. Chat queries (by id, conversation, latest)
4. deleteAll, close, errors after close
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from lorabridge.core.database import Database, DatabaseError
from lorabridge.core.entities import ChatMessage, MessageEntity


@pytest.fixture
def database(tempDir):
    """Create database in temp directory"""
    db = Database(str(tempDir / 'nested' / 'bridge.db'))
    yield db
    db.close()


def makeEntity(entityId, uid='ANDROID-1', timeIso='2024-01-01T00:00:00.000Z', rawText='<event/>'):
    return MessageEntity(id=entityId, uid=uid, type='a-f-G', timeIso=timeIso, origin='Host',
                         rawText=rawText, compressedBytes=b'\x01\x02')


def makeChat(chatId, senderUid='ANDROID-peer', receiverUid='ANDROID-me', timestamp='2024-01-01T00:00:00.000Z',
             message='hi'):
    return ChatMessage(id=chatId, senderUid=senderUid, senderCallsign='ALPHA', receiverUid=receiverUid,
                       receiverCallsign='BRAVO', message=message, timestamp=timestamp, origin='PHY')


class TestGeneric:

    def test_insert_and_get(self, database):
        assert database.insertGeneric(makeEntity('e1'))
        stored = database.getGenericById('e1')
        assert stored == makeEntity('e1')
        assert database.existsGeneric('e1')
        assert not database.existsGeneric('e2')

    def test_duplicate_ignored(self, database):
        assert database.insertGeneric(makeEntity('e1', rawText='<first/>'))
        assert not database.insertGeneric(makeEntity('e1', rawText='<second/>'))
        assert database.getGenericById('e1').rawText == '<first/>'

    def test_by_uid_oldest_first(self, database):
        database.insertGeneric(makeEntity('late', timeIso='2024-01-01T00:00:10.000Z'))
        database.insertGeneric(makeEntity('early', timeIso='2024-01-01T00:00:01.000Z'))
        database.insertGeneric(makeEntity('other', uid='ANDROID-2'))
        assert [e.id for e in database.getGenericByUid('ANDROID-1')] == ['early', 'late']

    def test_latest(self, database):
        assert database.latestGeneric() is None
        database.insertGeneric(makeEntity('a', timeIso='2024-01-01T00:00:05.000Z'))
        database.insertGeneric(makeEntity('b', timeIso='2024-01-01T00:00:02.000Z'))
        assert database.latestGeneric().id == 'a'

    def test_missing(self, database):
        assert database.getGenericById('nope') is None
        assert database.getGenericByUid('nope') == []


class TestChat:

    def test_insert_and_get(self, database):
        assert database.insertChat(makeChat('c1'))
        assert database.getChatById('c1') == makeChat('c1')
        assert database.existsChat('c1')

    def test_duplicate_ignored(self, database):
        assert database.insertChat(makeChat('c1', message='first'))
        assert not database.insertChat(makeChat('c1', message='second'))
        assert database.getChatById('c1').message == 'first'

    def test_conversation(self, database):
        database.insertChat(makeChat('c2', timestamp='2024-01-01T00:00:02.000Z'))
        database.insertChat(makeChat('c1', senderUid='ANDROID-me', receiverUid='ANDROID-peer',
                                     timestamp='2024-01-01T00:00:01.000Z'))
        database.insertChat(makeChat('x', senderUid='ANDROID-third'))
        assert [c.id for c in database.getConversation('ANDROID-peer')] == ['c1', 'c2']

    def test_latest(self, database):
        database.insertChat(makeChat('c1', timestamp='2024-01-01T00:00:01.000Z'))
        database.insertChat(makeChat('c2', timestamp='2024-01-01T00:00:03.000Z'))
        assert database.latestChat().id == 'c2'

    def test_tables_are_separate(self, database):
        database.insertGeneric(makeEntity('same'))
        assert database.insertChat(makeChat('same'))


class TestLifecycle:

    def test_delete_all(self, database):
        database.insertGeneric(makeEntity('e1'))
        database.insertChat(makeChat('c1'))
        database.deleteAll()
        assert not database.existsGeneric('e1')
        assert database.latestChat() is None
        assert database.insertGeneric(makeEntity('e1'))

    def test_persists_across_reopen(self, tempDir):
        path = str(tempDir / 'bridge.db')
        with Database(path) as db:
            db.insertGeneric(makeEntity('e1'))
        with Database(path) as db:
            assert db.existsGeneric('e1')
            assert not db.insertGeneric(makeEntity('e1'))

    def test_closed_raises(self, tempDir):
        db = Database(str(tempDir / 'bridge.db'))
        db.close()
        db.close()
        with pytest.raises(DatabaseError):
            db.insertGeneric(makeEntity('e1'))
        with pytest.raises(DatabaseError):
            db.existsGeneric('e1')

    def test_unopenable_path(self, tempDir):
        blocker = tempDir / 'file'
        blocker.write_text('x')
        with pytest.raises((DatabaseError, OSError)):
            Database(str(blocker / 'bridge.db'))
