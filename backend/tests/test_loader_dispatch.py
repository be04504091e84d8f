"""Tests for validate-then-build dispatch against a resolved builder."""

import io

import pytest

from extension_stager.core.errors import ConfigValidationError, EntityBuildError
from extension_stager.extensions.entities import EntityDefinition, EntityType
from extension_stager.plugin_runtime.loader import buffer_config, build_entities


class RecordingBuilder:
    """Builder double that records what each call read from its stream."""

    def __init__(self, reject=None, build_error=None):
        self.calls = []
        self.reject = reject
        self.build_error = build_error
        self.entities = [EntityDefinition(entity_type=EntityType.FEED, name='f1')]

    def validate_extension_config(self, extension_name, config_stream):
        self.calls.append(('validate', extension_name, config_stream.read()))
        if self.reject is not None:
            raise self.reject

    def get_entities(self, job_name, config_stream):
        self.calls.append(('get_entities', job_name, config_stream.read()))
        if self.build_error is not None:
            raise self.build_error
        return self.entities

    def get_output_schemas(self, extension_name):
        return []


class TestBuildEntities:

    def test_validates_then_builds(self):
        builder = RecordingBuilder()
        result = build_entities(builder, 'sample-ext', 'job1', b'a: 1')
        assert result is builder.entities
        assert builder.calls == [
            ('validate', 'sample-ext', b'a: 1'),
            ('get_entities', 'job1', b'a: 1'),
        ]

    def test_stream_is_rebuffered_after_validation_consumes_it(self):
        builder = RecordingBuilder()
        build_entities(builder, 'sample-ext', 'job1', io.BytesIO(b'payload'))
        assert [call[2] for call in builder.calls] == [b'payload', b'payload']

    def test_validation_failure_stops_build(self):
        builder = RecordingBuilder(reject=ConfigValidationError('missing process_name'))
        with pytest.raises(ConfigValidationError) as excinfo:
            build_entities(builder, 'sample-ext', 'job1', b'{}')
        assert [call[0] for call in builder.calls] == ['validate']
        assert excinfo.value.extension_name == 'sample-ext'
        assert excinfo.value.job_name == 'job1'

    def test_other_validation_errors_are_wrapped(self):
        builder = RecordingBuilder(reject=ValueError('bad yaml'))
        with pytest.raises(ConfigValidationError) as excinfo:
            build_entities(builder, 'sample-ext', 'job1', b'{')
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert [call[0] for call in builder.calls] == ['validate']

    def test_build_failure_is_wrapped(self):
        builder = RecordingBuilder(build_error=KeyError('template'))
        with pytest.raises(EntityBuildError) as excinfo:
            build_entities(builder, 'sample-ext', 'job1', b'')
        assert excinfo.value.job_name == 'job1'
        assert isinstance(excinfo.value.__cause__, KeyError)

    def test_result_returned_verbatim(self):
        builder = RecordingBuilder()
        builder.entities = None
        assert build_entities(builder, 'sample-ext', 'job1', None) is None


class TestBufferConfig:

    @pytest.mark.parametrize('value,expected', [
        (None, b''),
        (b'raw', b'raw'),
        (bytearray(b'ba'), b'ba'),
        ('text: ü', 'text: ü'.encode('utf-8')),
    ])
    def test_values(self, value, expected):
        assert buffer_config(value) == expected

    def test_binary_stream(self):
        assert buffer_config(io.BytesIO(b'stream')) == b'stream'

    def test_text_stream(self):
        assert buffer_config(io.StringIO('name: x')) == b'name: x'
