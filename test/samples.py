"""Sample CoT documents shared by the test modules"""

POSITION_XML = (
    '<event version="2.0" uid="ANDROID-abc123" type="a-h-G" how="m-g" '
    'time="2024-01-01T00:00:00.000Z" start="2024-01-01T00:00:00.000Z" stale="2024-01-01T00:05:00.000Z">'
    '<point lat="52.52" lon="13.405" hae="35.0" ce="9999999.0" le="9999999.0"/>'
    '<detail>'
    '<contact callsign="ALPHA-1" endpoint="*:-1:stcp"/>'
    '<remarks>hostile vehicle</remarks>'
    '</detail>'
    '</event>'
)

CHAT_XML = (
    '<event version="2.0" uid="GeoChat.ANDROID-peer.ANDROID-me.msg-42" type="b-t-f" how="h-g-i-g-o" '
    'time="2024-01-01T00:00:00.000Z" start="2024-01-01T00:00:00.000Z" stale="2024-01-02T00:00:00.000Z">'
    '<point lat="0.0" lon="0.0" hae="9999999.0" ce="9999999.0" le="9999999.0"/>'
    '<detail>'
    '<__chat parent="RootContactGroup" groupOwner="false" messageId="msg-42" chatroom="BRAVO" '
    'id="ANDROID-me" senderCallsign="ALPHA-1">'
    '<chatgrp uid0="ANDROID-peer" uid1="ANDROID-me" id="ANDROID-me"/>'
    '</__chat>'
    '<link uid="ANDROID-peer" type="a-f-G-U-C" relation="p-p"/>'
    '<remarks source="BAO.F.ATAK.ANDROID-peer" to="ANDROID-me" time="2024-01-01T00:00:00.000Z">hello over lora</remarks>'
    '</detail>'
    '</event>'
)

PRETTY_XML = """
<event version="2.0" uid="marker-7" type="a-u-G" how="h-e"
       time="2024-03-05T10:20:30.000Z" start="2024-03-05T10:20:30.000Z" stale="2024-03-05T10:25:30.000Z">
    <point lat="1.5" lon="2.5" hae="9999999.0" ce="9999999.0" le="9999999.0"/>
    <detail>
        <usericon iconsetpath="COT_MAPPING_2525B/a-u/a-u-G"/>
    </detail>
</event>
"""


def positionXml(uid='ANDROID-abc123', time='2024-01-01T00:00:00.000Z', cotType='a-h-G'):
    """Position report with the given uid/time/type"""
    return (POSITION_XML
            .replace('ANDROID-abc123', uid)
            .replace('type="a-h-G"', f'type="{cotType}"')
            .replace('time="2024-01-01T00:00:00.000Z"', f'time="{time}"'))


class LoopbackChannel:
    """
    In-process stand-in for TransportChannel.

    Records every frame sent; when linked to a peer, delivers synchronously the
    way the modem pair would (CoT with its header, chat without).
    """

    def __init__(self):
        self.sent = []
        self.peer = None
        self.chatHandler = None
        self.cotHandler = None
        self.running = False

    def start(self):
        self.running = True
        return True

    def stop(self):
        self.running = False

    def registerChatHandler(self, handler):
        self.chatHandler = handler

    def registerCotHandler(self, handler):
        self.cotHandler = handler

    def sendChat(self, payload):
        self.sent.append(('chat', bytes(payload)))
        if self.peer is not None and self.peer.chatHandler is not None:
            self.peer.chatHandler(bytes(payload))
        return True

    def sendCot(self, payload):
        self.sent.append(('cot', bytes(payload)))
        if self.peer is not None and self.peer.cotHandler is not None:
            self.peer.cotHandler(b'LORA_COTX|' + bytes(payload))
        return True

    def status(self):
        return {'running': self.running, 'sent': len(self.sent)}


def linkChannels(first, second):
    first.peer = second
    second.peer = first
