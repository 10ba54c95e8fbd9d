"""Tests for BufferPool."""
from utils.buffers import BufferPool


def test_buffer_is_reset_before_reuse():
    pool = BufferPool()
    with pool.buffer() as first:
        first.write(b"payload")

    with pool.buffer() as second:
        assert second is first
        assert second.getvalue() == b""
        assert second.tell() == 0


def test_oversized_buffers_are_dropped():
    pool = BufferPool(max_buffer_size=4)
    with pool.buffer() as buf:
        buf.write(b"0123456789")

    assert len(pool) == 0


def test_idle_buffers_are_bounded():
    pool = BufferPool(max_idle=1)
    with pool.buffer() as a, pool.buffer() as b:
        assert a is not b

    assert len(pool) == 1


def test_buffer_is_returned_when_block_raises():
    pool = BufferPool()
    try:
        with pool.buffer() as buf:
            buf.write(b"partial")
            raise ValueError("encode failed")
    except ValueError:
        pass

    assert len(pool) == 1
    with pool.buffer() as again:
        assert again.getvalue() == b""
