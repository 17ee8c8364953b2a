"""SubscriptionManager 테스트
Feature: bitbank-stream
Property 7: 재연결마다 전체 채널 구독
"""

import json

from hypothesis import given, strategies as st, settings

from bitbank_stream.subscription import SubscriptionManager


channel_st = st.from_regex(r"(depth_diff|depth_whole|transactions|ticker)_[a-z]{3,5}_jpy",
                           fullmatch=True)


class TestJoinFrames:

    @given(channels=st.lists(channel_st, max_size=10))
    @settings(max_examples=100)
    def test_one_join_per_channel_every_time(self, channels):
        mgr = SubscriptionManager(channels)
        first = mgr.join_frames()
        second = mgr.join_frames()
        assert first == second
        assert len(first) == len(channels)
        for frame, channel in zip(first, channels):
            assert frame.startswith("42")
            assert json.loads(frame[2:]) == ["join-room", channel]


class TestSubscriptionUnit:

    def test_exact_wire_format(self):
        assert SubscriptionManager.join_frame("depth_whole_btc_jpy") == \
            '42["join-room","depth_whole_btc_jpy"]'

    def test_channel_list_is_immutable_copy(self):
        channels = ["ticker_btc_jpy"]
        mgr = SubscriptionManager(channels)
        channels.append("ticker_eth_jpy")
        assert mgr.join_frames() == ['42["join-room","ticker_btc_jpy"]']
