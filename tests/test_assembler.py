import os
import struct
import tempfile
import unittest

import numpy as np

from mrc_io import (
    AllocationError,
    CodecConfig,
    MRCReader,
    MRCWriter,
    PixelEncoding,
    SizeMismatchError,
    SizeMismatchWarning,
    TruncatedInputError,
    UnrecognizedStampError,
    UnsupportedEncodingError,
    VolumeMetadata,
    metadata_for_array,
    read_header_only,
    read_volume,
    write_volume,
)
from mrc_io.assembler import CodecState
from mrc_io.pixels import decode_slice
from tests.header_builder import build_header, write_container


class AssemblerTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "volume.mrc")

    def tearDown(self):
        self._tmp.cleanup()


class TestRoundTrip(AssemblerTestCase):
    def test_unsigned_byte_scenario(self):
        values = [0, 255, 128, 64, 32, 16, 8, 4]
        volume = np.array(values, dtype=np.uint8).reshape(2, 2, 2)
        meta = VolumeMetadata(extents=(2, 2, 2), encoding=PixelEncoding.UBYTE, spacing=(1.0, 1.0, 1.0))
        write_volume(self.path, volume, meta)

        out, parsed = read_volume(self.path)
        self.assertEqual(out.ravel().tolist(), values)
        self.assertEqual(parsed.extents, (2, 2, 2))
        self.assertEqual(parsed.spacing, (1.0, 1.0, 1.0))
        self.assertEqual((parsed.min_value, parsed.max_value), (0.0, 255.0))
        self.assertEqual(os.path.getsize(self.path), 1024 + 8)

    def test_every_supported_encoding(self):
        rng = np.random.default_rng(0)
        shape = (3, 4, 5)
        cases = {
            PixelEncoding.UBYTE: rng.integers(0, 256, shape).astype(np.uint8),
            PixelEncoding.SHORT: rng.integers(-32768, 32768, shape).astype(np.int16),
            PixelEncoding.FLOAT: rng.standard_normal(shape).astype(np.float32),
            PixelEncoding.COMPLEX_SHORT: (rng.integers(-100, 100, shape)
                                          + 1j * rng.integers(-100, 100, shape)).astype(np.complex64),
            PixelEncoding.COMPLEX_FLOAT: (rng.standard_normal(shape)
                                          + 1j * rng.standard_normal(shape)).astype(np.complex64),
        }
        for encoding, volume in cases.items():
            with self.subTest(encoding=encoding.name):
                meta = VolumeMetadata(extents=(5, 4, 3), encoding=encoding, spacing=(0.5, 1.5, 2.0))
                write_volume(self.path, volume, meta)
                out, parsed = read_volume(self.path)
                self.assertEqual(parsed.encoding, encoding)
                self.assertEqual(out.dtype, encoding.volume_dtype)
                np.testing.assert_array_equal(out, volume)
                np.testing.assert_allclose(parsed.spacing, (0.5, 1.5, 2.0), rtol=1e-6)

    def test_rgb(self):
        rng = np.random.default_rng(1)
        volume = rng.integers(0, 256, (2, 3, 4, 4)).astype(np.uint8)
        volume[..., 0] = 255
        write_volume(self.path, volume, metadata_for_array(volume, PixelEncoding.RGB))
        out, parsed = read_volume(self.path)
        self.assertEqual(parsed.encoding, PixelEncoding.RGB)
        self.assertEqual(parsed.extents, (4, 3, 2))
        np.testing.assert_array_equal(out, volume)

    def test_grayscale_with_x_extent_of_four(self):
        volume = np.arange(60, dtype=np.uint8).reshape(5, 3, 4)
        write_volume(self.path, volume)
        out, parsed = read_volume(self.path)
        self.assertEqual(parsed.encoding, PixelEncoding.UBYTE)
        self.assertEqual(parsed.extents, (4, 3, 5))
        np.testing.assert_array_equal(out, volume)

    def test_two_dimensional(self):
        image = np.arange(12, dtype=np.float32).reshape(3, 4)
        write_volume(self.path, image)
        out, parsed = read_volume(self.path)
        self.assertEqual(parsed.extents, (4, 3, 1))
        np.testing.assert_array_equal(out[0], image)

    def test_spacing_in_other_units(self):
        volume = np.zeros((2, 2, 2), dtype=np.int16)
        meta = VolumeMetadata(extents=(2, 2, 2), encoding=PixelEncoding.SHORT,
                              spacing=(0.001, 0.002, 0.003), units=("millimeters",) * 3)
        write_volume(self.path, volume, meta)
        _, parsed = read_volume(self.path)
        np.testing.assert_allclose(parsed.spacing, (1000.0, 2000.0, 3000.0), rtol=1e-6)

    def test_caller_metadata_not_modified(self):
        meta = VolumeMetadata(extents=(2, 2, 1))
        write_volume(self.path, np.zeros((1, 2, 2), dtype=np.uint8), meta)
        self.assertIsNone(meta.encoding)
        self.assertEqual(read_header_only(self.path).encoding, PixelEncoding.UBYTE)


class TestWriteRanges(AssemblerTestCase):
    def test_four_dimensional_ranges_time_outer(self):
        # value encodes (t, z) so section order can be checked
        volume = np.zeros((3, 4, 2, 2), dtype=np.int16)
        for t in range(3):
            for z in range(4):
                volume[t, z] = 10 * t + z
        meta = VolumeMetadata(extents=(2, 2, 4, 3), encoding=PixelEncoding.SHORT,
                              spacing=(1.0, 1.0, 2.0, 1.0), units=("nanometers",) * 4)
        write_volume(self.path, volume, meta, slice_range=(1, 2), time_range=(1, 2))

        out, parsed = read_volume(self.path)
        self.assertEqual(parsed.extents, (2, 2, 4))
        self.assertEqual([int(section[0, 0]) for section in out], [11, 12, 21, 22])
        self.assertEqual(parsed.spacing[2], 2.0)

    def test_slice_range_three_dimensional(self):
        volume = np.arange(5, dtype=np.uint8).reshape(5, 1, 1).repeat(2, axis=1)
        write_volume(self.path, volume, slice_range=(3, 4))
        out, parsed = read_volume(self.path)
        self.assertEqual(parsed.extents, (1, 2, 2))
        self.assertEqual(out[:, 0, 0].tolist(), [3, 4])

    def test_invalid_range(self):
        with self.assertRaises(ValueError):
            write_volume(self.path, np.zeros((2, 2, 2), np.uint8), slice_range=(1, 5))

    def test_shape_must_match_extents(self):
        meta = VolumeMetadata(extents=(3, 2, 2), encoding=PixelEncoding.UBYTE)
        with self.assertRaises(ValueError):
            write_volume(self.path, np.zeros((2, 2, 2), np.uint8), meta)

    def test_overwrites_existing_file(self):
        with open(self.path, 'wb') as f:
            f.write(b'\xaa' * 5000)
        write_volume(self.path, np.ones((1, 2, 2), np.uint8))
        self.assertEqual(os.path.getsize(self.path), 1028)

    def test_samples_outside_encoding_range_are_reported(self):
        volume = np.array([0, 40000], dtype=np.int32).reshape(1, 1, 2)
        meta = VolumeMetadata(extents=(2, 1, 1), encoding=PixelEncoding.SHORT)
        with self.assertLogs("mrc_io.assembler", level="WARNING") as logs:
            write_volume(self.path, volume, meta)
        self.assertIn("SHORT", logs.output[0])

    def test_wrong_length_header_group_rejected_before_writing(self):
        meta = VolumeMetadata(extents=(2, 2, 1), encoding=PixelEncoding.UBYTE, origin=(1.0, 2.0))
        with self.assertRaises(ValueError):
            write_volume(self.path, np.zeros((1, 2, 2), np.uint8), meta)
        self.assertFalse(os.path.exists(self.path))

    def test_compressed_rgb_not_written(self):
        meta = VolumeMetadata(extents=(2, 2, 1), encoding=PixelEncoding.COMPRESSED_RGB)
        with self.assertRaises(UnsupportedEncodingError):
            write_volume(self.path, np.zeros((1, 2, 2, 4), np.uint8), meta)
        self.assertFalse(os.path.exists(self.path))


class TestReadFailures(AssemblerTestCase):
    def test_missing_file(self):
        with self.assertRaises(IOError):
            read_volume(os.path.join(self._tmp.name, "absent.mrc"))

    def test_bad_stamp_streams_nothing(self):
        write_container(self.path, build_header(stamp=3), bytes(8))
        calls = []
        reader = MRCReader(self.path, progress=calls.append)
        with self.assertRaises(UnrecognizedStampError):
            reader.read()
        self.assertEqual(calls, [])
        self.assertEqual(reader.state, CodecState.CLOSED)
        self.assertIsNone(reader._file)

    def test_allocation_failure_releases_file(self):
        write_container(self.path, build_header(extents=(60000, 60000, 60000)), bytes(8))
        reader = MRCReader(self.path)
        with self.assertWarns(SizeMismatchWarning):
            with self.assertRaises(AllocationError):
                reader.read()
        self.assertEqual(reader.state, CodecState.CLOSED)
        self.assertIsNone(reader._file)

        with self.assertWarns(SizeMismatchWarning):
            with self.assertRaises(AllocationError):
                read_volume(self.path)

    def test_compressed_rgb_before_pixels(self):
        write_container(self.path, build_header(mode=17), bytes(24))
        calls = []
        with self.assertRaises(UnsupportedEncodingError):
            read_volume(self.path, progress=calls.append)
        self.assertEqual(calls, [])

    def test_truncated_header(self):
        write_container(self.path, build_header()[:100])
        with self.assertRaises(TruncatedInputError):
            read_volume(self.path)

    def test_reader_is_single_use(self):
        write_volume(self.path, np.zeros((1, 2, 2), np.uint8))
        reader = MRCReader(self.path)
        reader.read()
        with self.assertRaises(RuntimeError):
            reader.read()

    def test_invalid_config(self):
        with self.assertRaises(ValueError):
            MRCWriter(self.path, CodecConfig(progress_step=0))


class TestSizeMismatch(AssemblerTestCase):
    def test_lenient_read_zero_fills_tail(self):
        # declares 200 payload bytes, carries 100
        write_container(self.path, build_header(extents=(10, 10, 2)), bytes(range(100)))
        with self.assertWarns(SizeMismatchWarning):
            out, meta = read_volume(self.path)
        self.assertEqual(out.shape, (2, 10, 10))
        self.assertEqual(meta.extents, (10, 10, 2))
        self.assertEqual(out[0].ravel().tolist(), list(range(100)))
        self.assertFalse(out[1].any())

    def test_strict_read_fails(self):
        write_container(self.path, build_header(extents=(10, 10, 2)), bytes(100))
        with self.assertRaises(SizeMismatchError):
            read_volume(self.path, config=CodecConfig(strict_size_check=True))


class TestByteOrder(AssemblerTestCase):
    def test_big_endian_float_slice(self):
        values = np.linspace(-2.0, 2.0, 16, dtype=np.float32).reshape(4, 4)
        raw = values.astype('>f4').tobytes()
        write_container(self.path, build_header(extents=(4, 4, 1), mode=2, big_endian=True), raw)

        out, meta = read_volume(self.path)
        self.assertTrue(meta.big_endian)
        np.testing.assert_array_equal(out[0], values)
        np.testing.assert_array_equal(out[0], decode_slice(raw, PixelEncoding.FLOAT, 4, 4, True))

    def test_little_endian_legacy_container(self):
        values = np.arange(-4, 4, dtype=np.int16).reshape(2, 2, 2)
        header = build_header(extents=(2, 2, 2), mode=1, big_endian=False, versioned=False)
        write_container(self.path, header, values.astype('<i2').tobytes())
        out, meta = read_volume(self.path)
        self.assertFalse(meta.big_endian)
        np.testing.assert_array_equal(out, values)


class TestProgress(AssemblerTestCase):
    def _assert_progress(self, calls):
        self.assertTrue(calls)
        self.assertEqual(calls, sorted(calls))
        self.assertTrue(all(0 <= pct <= 100 for pct in calls))
        self.assertEqual(calls[-1], 100)

    def test_read_and_write_progress(self):
        volume = np.zeros((20, 8, 8), dtype=np.float32)
        write_calls, read_calls = [], []
        write_volume(self.path, volume, progress=write_calls.append)
        read_volume(self.path, progress=read_calls.append)
        self._assert_progress(write_calls)
        self._assert_progress(read_calls)
        self.assertLessEqual(len(read_calls), 12)

    def test_unsigned_byte_reports_finer_steps(self):
        volume = np.zeros((50, 4, 4), dtype=np.uint8)
        write_volume(self.path, volume)
        calls = []
        read_volume(self.path, progress=calls.append)
        self._assert_progress(calls)
        self.assertGreater(len(calls), 12)

    def test_failing_callback_does_not_abort(self):
        def broken(pct):
            raise RuntimeError("display gone")

        write_volume(self.path, np.ones((3, 2, 2), np.uint8), progress=broken)
        out, _ = read_volume(self.path, progress=broken)
        self.assertTrue(out.all())


if __name__ == '__main__':
    unittest.main()
