import yaml

from extension_stager.core.errors import ConfigValidationError
from extension_stager.extensions.builder import ExtensionBuilder

from .templates import render_process

PROCESS_TEMPLATE = '/process.yml'


class SampleBuilder(ExtensionBuilder):

    def validate_extension_config(self, extension_name, config_stream):
        config = yaml.safe_load(config_stream.read()) or {}
        if not isinstance(config, dict) or not config.get('process_name'):
            raise ConfigValidationError(f'{extension_name}: process_name is required')

    def get_entities(self, job_name, config_stream):
        config = yaml.safe_load(config_stream.read())
        template = yaml.safe_load(self.read_resource(PROCESS_TEMPLATE))
        return [render_process(job_name, config, template)]

    def get_output_schemas(self, extension_name):
        return []
