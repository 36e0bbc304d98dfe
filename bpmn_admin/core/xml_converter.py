"""
XML → object conversion for BPMN schemas.

The converter is deliberately not namespace-aware: element and attribute
names keep the prefix they were written with ("bpmn:process"), so a schema
whose prefix was rewritten (bpmn2: → bpmn:) still parses even though the new
prefix has no xmlns declaration.

Output shape:
    <bpmn:definitions><bpmn:process id="p"><bpmn:sequenceFlow sourceRef="a"/>
    →
    {"bpmn:definitions": {"bpmn:process": [{"$": {"id": "p"},
                                           "bpmn:sequenceFlow": [{"$": {"sourceRef": "a"}}]}]}}

- attributes live under "$"
- non-blank text lives under "_" (an element with text only becomes the string)
- child elements are always lists, in document order
"""

import logging
from typing import Any, Dict, Union
from xml.dom import Node
from xml.parsers.expat import ExpatError

from defusedxml import DefusedXmlException
from defusedxml import expatbuilder

logger = logging.getLogger(__name__)

ATTRIBUTES_KEY = "$"
TEXT_KEY = "_"


class XmlConversionError(ValueError):
    """XML could not be parsed"""


class XmlJsConverter:
    """Converts XML strings into nested dict/list structures"""

    def convert(self, xml: str) -> Dict[str, Any]:
        """
        Parse an XML document.

        Args:
            xml: XML document as string

        Returns:
            {root_tag: root_node}

        Raises:
            XmlConversionError: If the document is empty or malformed, or uses
                DTD entities (rejected by defusedxml)
        """
        if not isinstance(xml, str) or not xml.strip():
            raise XmlConversionError("XML document is empty")

        try:
            document = expatbuilder.parseString(xml, namespaces=False)
        except (ExpatError, DefusedXmlException, ValueError) as e:
            logger.debug(f"XML parsing failed: {e}")
            raise XmlConversionError(str(e)) from e

        root = document.documentElement
        return {root.tagName: self._element_to_object(root)}

    def _element_to_object(self, element) -> Union[Dict[str, Any], str]:
        node: Dict[str, Any] = {}

        if element.attributes is not None and element.attributes.length:
            node[ATTRIBUTES_KEY] = {name: value for name, value in element.attributes.items()}

        text_parts = []
        for child in element.childNodes:
            if child.nodeType == Node.ELEMENT_NODE:
                node.setdefault(child.tagName, []).append(self._element_to_object(child))
            elif child.nodeType in (Node.TEXT_NODE, Node.CDATA_SECTION_NODE):
                text_parts.append(child.data)

        text = "".join(text_parts).strip()
        if text:
            if not node:
                return text
            node[TEXT_KEY] = text

        return node
