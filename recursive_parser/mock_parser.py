"""
Scripted parser for exercising the recursive parser.

MockParser reads a small XML script and executes its instructions in
document order, which makes nesting, naming and failure scenarios easy to
build without real office documents:

    <mock>
      <metadata action="add" name="author">Nikolai Lobachevsky</metadata>
      <write element="p">main_content</write>
      <embedded name="embed1.xml">
        <mock><write>some_embedded_content</write></mock>
      </embedded>
      <embedded>raw text payload of an unnamed resource</embedded>
      <throw class="ValueError">boom</throw>
    </mock>

<embedded> passes its child <mock> element (or its text) to the discovery
callback as a new stream. <throw> raises a built-in exception or one of the
package's own exception classes by name.
"""

import builtins
import io

from lxml import etree

from . import exceptions
from .metadata import Metadata, CONTENT_TYPE, RESOURCE_NAME
from .parsers import Parser
from .sink import XHTMLWriter
from .logger import get_module_logger

logger = get_module_logger("mock_parser")

MOCK_CONTENT_TYPE = "application/mock+xml"


class MockParser(Parser):
    """Executes <mock> scripts."""

    supported_types = frozenset({MOCK_CONTENT_TYPE})

    def parse(self, stream, sink, metadata, context):
        xml_parser = etree.XMLParser(resolve_entities=False, no_network=True)
        root = etree.fromstring(stream.read(), parser=xml_parser)
        if root.tag != "mock":
            raise ValueError(f"Expected <mock> document, found <{root.tag}>")

        metadata.set(CONTENT_TYPE, MOCK_CONTENT_TYPE)
        xhtml = XHTMLWriter(sink, metadata)
        xhtml.start_document()

        for instruction in root:
            if not isinstance(instruction.tag, str):
                continue  # comments and processing instructions
            if instruction.tag == "metadata":
                self._metadata(instruction, metadata)
            elif instruction.tag == "write":
                attrs = {k: v for k, v in instruction.attrib.items() if k != "element"}
                xhtml.element(instruction.get("element", "p"), instruction.text or "", attrs or None)
            elif instruction.tag == "embedded":
                self._embedded(instruction, context)
            elif instruction.tag == "throw":
                raise self._exception(instruction)
            else:
                logger.warning(f"Ignoring unknown mock instruction <{instruction.tag}>")

        xhtml.end_document()

    @staticmethod
    def _metadata(instruction, metadata: Metadata) -> None:
        name = instruction.get("name")
        value = instruction.text or ""
        if instruction.get("action", "set") == "add":
            metadata.add(name, value)
        else:
            metadata.set(name, value)

    @staticmethod
    def _embedded(instruction, context) -> None:
        children = [child for child in instruction if isinstance(child.tag, str)]
        if children:
            payload = etree.tostring(children[0], with_tail=False)
        else:
            payload = (instruction.text or "").encode("utf-8")

        embedded = Metadata()
        if instruction.get("name") is not None:
            embedded.set(RESOURCE_NAME, instruction.get("name"))
        if instruction.get("content-type"):
            embedded.set(CONTENT_TYPE, instruction.get("content-type"))
        context.parse_embedded(io.BytesIO(payload), embedded)

    @staticmethod
    def _exception(instruction) -> Exception:
        class_name = instruction.get("class", "RuntimeError")
        exc_cls = getattr(exceptions, class_name, None) or getattr(builtins, class_name, None)
        if not (isinstance(exc_cls, type) and issubclass(exc_cls, Exception)):
            raise ValueError(f"Unknown exception class in <throw>: {class_name}")
        return exc_cls(instruction.text or "")
