"""
Loading of templates and parameter documents from disk.

Templates are forwarded to the provisioning service verbatim. They are only parsed locally to find out which
capabilities they require, so a deployment that would be rejected for a missing capability fails before any remote
call is made.
"""
import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Set

import yaml

from stackdeploy.cloudformation.models import Parameter, find_duplicate_keys
from stackdeploy.constants import CAPABILITY_AUTO_EXPAND, CAPABILITY_IAM, CAPABILITY_NAMED_IAM
from stackdeploy.exceptions import DuplicateParameterError, ParameterFileError, TemplateError

LOG = logging.getLogger(__name__)

# properties which give an IAM resource a custom name, requiring CAPABILITY_NAMED_IAM
IAM_NAME_PROPERTIES = {
    "AWS::IAM::Group": "GroupName",
    "AWS::IAM::InstanceProfile": "InstanceProfileName",
    "AWS::IAM::ManagedPolicy": "ManagedPolicyName",
    "AWS::IAM::Role": "RoleName",
    "AWS::IAM::User": "UserName",
}

IAM_RESOURCE_PREFIX = "AWS::IAM::"
SERVERLESS_RESOURCE_PREFIX = "AWS::Serverless::"


class TemplateLoader(yaml.SafeLoader):
    """Safe YAML loader that understands the CloudFormation short-form tags and keeps dates as strings."""


# parse date strings as strings, not date objects (e.g., AWSTemplateFormatVersion: 2010-09-09)
TemplateLoader.yaml_implicit_resolvers = {
    k: [r for r in v if r[0] != "tag:yaml.org,2002:timestamp"]
    for k, v in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def construct_intrinsic_function(loader: yaml.Loader, tag_suffix: str, node: yaml.Node) -> Dict:
    """Turns a short-form tag like ``!Ref Name`` or ``!GetAtt A.B`` into its long form ``{"Ref": "Name"}``."""
    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    if tag_suffix in ("Ref", "Condition"):
        return {tag_suffix: value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        value = value.split(".", 1)
    return {f"Fn::{tag_suffix}": value}


TemplateLoader.add_multi_constructor("!", construct_intrinsic_function)


class Template:
    body: str
    document: Dict[str, Any]
    path: Optional[str]

    def __init__(self, body: str, document: Dict[str, Any], path: Optional[str] = None):
        self.body = body
        self.document = document
        self.path = path

    @property
    def description(self) -> Optional[str]:
        description = self.document.get("Description")
        return description.strip() if isinstance(description, str) else description

    @property
    def parameter_names(self) -> List[str]:
        return list((self.document.get("Parameters") or {}).keys())

    @property
    def resources(self) -> Dict[str, Dict]:
        return self.document.get("Resources") or {}

    @property
    def resource_types(self) -> List[str]:
        types = []
        for resource in self.resources.values():
            if isinstance(resource, dict) and resource.get("Type") not in types:
                types.append(resource.get("Type"))
        return types

    @property
    def transforms(self) -> List:
        transform = self.document.get("Transform")
        if not transform:
            return []
        return transform if isinstance(transform, list) else [transform]

    def required_capabilities(self) -> Set[str]:
        capabilities = set()

        if self.transforms:
            capabilities.add(CAPABILITY_AUTO_EXPAND)

        for logical_id, resource in self.resources.items():
            if not isinstance(resource, dict):
                continue
            resource_type = resource.get("Type") or ""
            if resource_type.startswith(SERVERLESS_RESOURCE_PREFIX):
                capabilities.add(CAPABILITY_AUTO_EXPAND)
            if not resource_type.startswith(IAM_RESOURCE_PREFIX):
                continue
            properties = resource.get("Properties") or {}
            name_property = IAM_NAME_PROPERTIES.get(resource_type)
            if name_property and name_property in properties:
                LOG.debug("Resource %s has a custom name, requiring %s", logical_id, CAPABILITY_NAMED_IAM)
                capabilities.add(CAPABILITY_NAMED_IAM)
            else:
                capabilities.add(CAPABILITY_IAM)

        # a template with named IAM resources only needs to acknowledge CAPABILITY_NAMED_IAM
        if CAPABILITY_NAMED_IAM in capabilities:
            capabilities.discard(CAPABILITY_IAM)
        return capabilities

    def missing_capabilities(self, granted: Iterable[str]) -> List[str]:
        """Returns the required capabilities not covered by the granted ones."""
        granted = set(granted)
        if CAPABILITY_NAMED_IAM in granted:
            granted.add(CAPABILITY_IAM)
        return sorted(self.required_capabilities() - granted)

    def __repr__(self):
        return f"Template(path={self.path!r}, resources={len(self.resources)})"


def parse_template(body: str, path: Optional[str] = None) -> Template:
    """
    Parses a YAML or JSON template body.

    :param body: the template body
    :param path: the file the body was read from, used in error messages
    :return: the parsed template
    :raises TemplateError: if the body is not a template document
    """
    source = path or "<template>"
    try:
        document = json.loads(body)
    except ValueError:
        try:
            document = yaml.load(body, Loader=TemplateLoader)
        except yaml.YAMLError as e:
            raise TemplateError(f"Unable to parse template {source}: {e}") from e

    if not isinstance(document, dict):
        raise TemplateError(f"Template {source} must be a mapping of template sections")
    if not isinstance(document.get("Resources"), dict) or not document["Resources"]:
        raise TemplateError(f"Template {source} must declare at least one resource in 'Resources'")

    return Template(body, document, path=path)


def load_template(path: str) -> Template:
    try:
        with open(path, encoding="utf-8") as fd:
            body = fd.read()
    except OSError as e:
        raise TemplateError(f"Unable to read template file {path}: {e.strerror}") from e

    template = parse_template(body, path=path)
    LOG.debug("Loaded template %s with %s resources", path, len(template.resources))
    return template


class _JsonPairs(list):
    """All key/value pairs of a JSON object, duplicates included."""


def _to_parameter_value(key: str, value: Any) -> str:
    if isinstance(value, _JsonPairs):
        raise ParameterFileError(f"Unsupported value for parameter '{key}': {dict(value)!r}")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, list) and not any(isinstance(v, (list, _JsonPairs)) for v in value):
        # CommaDelimitedList and List<...> parameters
        return ",".join(_to_parameter_value(key, v) for v in value)
    raise ParameterFileError(f"Unsupported value for parameter '{key}': {value!r}")


def _parameter_from_entry(entry: Any, source: str) -> Parameter:
    if not isinstance(entry, _JsonPairs):
        raise ParameterFileError(f"Parameter entries in {source} must be objects, got {entry!r}")
    fields = dict(entry)
    duplicate_fields = find_duplicate_keys(k for k, _ in entry)
    if duplicate_fields:
        raise ParameterFileError(
            f"Parameter entry in {source} repeats the fields [{', '.join(duplicate_fields)}]"
        )

    key = fields.get("ParameterKey")
    if not key or not isinstance(key, str):
        raise ParameterFileError(f"Parameter entry in {source} has no 'ParameterKey': {fields!r}")
    if fields.get("UsePreviousValue") is True:
        return Parameter(key, use_previous_value=True)
    if "ParameterValue" not in fields:
        raise ParameterFileError(f"Parameter '{key}' in {source} has no 'ParameterValue'")
    return Parameter(key, _to_parameter_value(key, fields["ParameterValue"]))


def parse_parameters(content: str, source: str = "<parameters>") -> List[Parameter]:
    """
    Parses a parameter document. Two formats are accepted:

    - the list format of the AWS CLI: ``[{"ParameterKey": "Name", "ParameterValue": "value"}, ...]``
    - a flat object: ``{"Name": "value", ...}``

    :param content: the JSON document
    :param source: where the document comes from, used in error messages
    :return: the parameters in document order
    :raises DuplicateParameterError: if a parameter key occurs more than once
    """
    try:
        document = json.loads(content, object_pairs_hook=_JsonPairs)
    except ValueError as e:
        raise ParameterFileError(f"Unable to parse parameters {source}: {e}") from e

    if isinstance(document, _JsonPairs):
        parameters = [Parameter(key, _to_parameter_value(key, value)) for key, value in document]
    elif isinstance(document, list):
        parameters = [_parameter_from_entry(entry, source) for entry in document]
    else:
        raise ParameterFileError(f"Parameters in {source} must be a list or an object")

    duplicates = find_duplicate_keys(param.key for param in parameters)
    if duplicates:
        raise DuplicateParameterError(duplicates)
    return parameters


def load_parameters(path: str) -> List[Parameter]:
    try:
        with open(path, encoding="utf-8") as fd:
            content = fd.read()
    except OSError as e:
        raise ParameterFileError(f"Unable to read parameters file {path}: {e.strerror}") from e

    parameters = parse_parameters(content, source=path)
    LOG.debug("Loaded %s parameters from %s", len(parameters), path)
    return parameters


def parse_parameter_overrides(overrides: Iterable[str]) -> List[Parameter]:
    """Parses ``Key=Value`` strings as given on the command line."""
    parameters = []
    for override in overrides:
        key, sep, value = override.partition("=")
        if not sep or not key.strip():
            raise ParameterFileError(f"Parameter override '{override}' is not of the form Key=Value")
        parameters.append(Parameter(key.strip(), value))

    duplicates = find_duplicate_keys(param.key for param in parameters)
    if duplicates:
        raise DuplicateParameterError(duplicates)
    return parameters


def merge_parameters(parameters: List[Parameter], overrides: List[Parameter]) -> List[Parameter]:
    """Replaces parameters with overrides of the same key, appending new keys in override order."""
    by_key = {param.key: param for param in overrides}
    merged = [by_key.pop(param.key, param) for param in parameters]
    merged.extend(param for param in overrides if param.key in by_key)
    return merged
