"""
Command Parser
Maps a natural-language bulk-action sentence to a BulkOperation descriptor
"""
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from rapidfuzz import fuzz, process

from photo_discovery.config import Settings, settings as default_settings
from photo_discovery.models.operations import BulkOperation, OperationType
from photo_discovery.models.query import EntityType
from photo_discovery.services.entity_extraction import EntityExtractor, STOPWORDS, normalize_query
import logging

logger = logging.getLogger(__name__)


# Known command templates, used to suggest alternatives for ambiguous input
COMMAND_TEMPLATES = [
    "download all selected photos",
    "download photos to folder",
    "download as zip file",
    "download high resolution photos",
    "add tags to selected photos",
    "tag photos as vacation",
    "tag photos as family",
    "remove tags from selected photos",
    "create album with selected photos",
    "create Hawaii album",
    "add selected photos to album",
    "export metadata as CSV",
    "export metadata as JSON",
    "analyze selected photos",
    "delete selected photos",
]

# ACTION_TYPE entity value -> operation type
ACTION_OPERATIONS = {
    "download": OperationType.DOWNLOAD,
    "tag": OperationType.TAG,
    "untag": OperationType.TAG,
    "album_create": OperationType.ALBUM_CREATE,
    "album_add": OperationType.ALBUM_ADD,
    "export_metadata": OperationType.EXPORT_METADATA,
    "analyze": OperationType.ANALYZE,
    "delete": OperationType.DELETE,
}

# Words dropped from tag lists and context suggestions
NOISE_WORDS = STOPWORDS | {"tag", "tags", "as", "it", "them", "these", "photos", "photo", "selected"}

UNKNOWN_CONFIDENCE = 0.3
MULTIPLE_ACTIONS_PENALTY = 0.6


def split_terms(value: str) -> List[str]:
    """Split 'a, b and c' into clean terms"""
    terms = []
    for term in re.split(r"\s*,\s*|\s+and\s+|\s*&\s*", value):
        term = term.strip(" \"'.")
        words = [word for word in term.split() if word.lower() not in NOISE_WORDS]
        term = " ".join(words)
        if term and term not in terms:
            terms.append(term)
    return terms


class CommandParser:
    """
    Bulk-command parser

    Parsing the same sentence with the same context always returns the same
    type and parameters. Context only feeds ``suggested_parameters``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extractor: Optional[EntityExtractor] = None,
        templates: Optional[List[str]] = None,
    ):
        self.settings = settings or default_settings
        self.extractor = extractor or EntityExtractor()
        self.templates = list(templates) if templates is not None else list(COMMAND_TEMPLATES)
        self._parsers: Dict[OperationType, Callable[[str, str], Tuple[Dict[str, Any], float]]] = {
            OperationType.DOWNLOAD: self._parse_download,
            OperationType.TAG: self._parse_tag,
            OperationType.ALBUM_CREATE: self._parse_album_create,
            OperationType.ALBUM_ADD: self._parse_album_add,
            OperationType.EXPORT_METADATA: self._parse_export,
            OperationType.ANALYZE: self._parse_analyze,
            OperationType.DELETE: self._parse_delete,
        }

    def parse_command(
        self,
        text: str,
        context: Optional[Dict[str, Any]] = None,
        target_photos: Optional[Iterable[str]] = None,
    ) -> BulkOperation:
        """
        Parse a bulk-action sentence

        Args:
            text: Command text, e.g. "download all selected photos as zip"
            context: Prior search context (last_query, current_location)
            target_photos: Photo ids the command applies to

        Returns:
            BulkOperation descriptor; below the confidence threshold its
            parameters are empty and suggestions are populated
        """
        original = re.sub(r"\s+", " ", text or "").strip()
        normalized = normalize_query(original)
        targets = list(dict.fromkeys(target_photos or []))
        context_parameters = self._context_parameters(context)

        actions: List[str] = []
        for entity in self.extractor.extract(normalized):
            if entity.type == EntityType.ACTION_TYPE and entity.normalized_value in ACTION_OPERATIONS:
                operation = ACTION_OPERATIONS[entity.normalized_value]
                if entity.normalized_value not in actions and operation not in [ACTION_OPERATIONS[a] for a in actions]:
                    actions.append(entity.normalized_value)

        if not actions:
            logger.info(f"No operation recognised in command '{normalized}'")
            return BulkOperation(
                type=OperationType.UNKNOWN,
                confidence=UNKNOWN_CONFIDENCE if normalized else 0.0,
                suggestions=self.suggest(normalized),
                suggested_parameters=context_parameters,
                target_photos=targets,
                original_command=original,
            )

        primary = actions[0]
        operation_type = ACTION_OPERATIONS[primary]
        parameters, confidence = self._parsers[operation_type](original, normalized)
        if primary == "untag":
            parameters["action"] = "remove"

        suggestions: List[str] = []
        if len(actions) > 1:
            # Several different operations named in one sentence
            confidence *= MULTIPLE_ACTIONS_PENALTY
            suggestions = [self._template_for(ACTION_OPERATIONS[action]) for action in actions]

        confidence = round(confidence, 4)
        suggested_parameters = dict(context_parameters) if operation_type == OperationType.TAG else {}

        if confidence < self.settings.command_confidence_threshold:
            # Not actionable: parsed values become suggestions only
            suggested_parameters.update(parameters)
            parameters = {}
            for suggestion in self.suggest(normalized):
                if suggestion not in suggestions:
                    suggestions.append(suggestion)

        descriptor = BulkOperation(
            type=operation_type,
            parameters=parameters,
            confidence=confidence,
            suggestions=suggestions,
            suggested_parameters=suggested_parameters,
            target_photos=targets,
            original_command=original,
        )
        logger.info(f"Parsed command '{normalized}' as {operation_type.value} (confidence: {confidence:.2f})")
        return descriptor

    def suggest(self, normalized: str, limit: int = 3) -> List[str]:
        """Nearest known command templates"""
        if not normalized:
            return self.templates[:limit]
        ranked = process.extract(normalized, self.templates, scorer=fuzz.token_set_ratio, limit=limit)
        return [template for template, _, _ in ranked]

    def _template_for(self, operation_type: OperationType) -> str:
        prefix = {
            OperationType.ALBUM_CREATE: "create album",
            OperationType.ALBUM_ADD: "to album",
            OperationType.EXPORT_METADATA: "export metadata",
        }.get(operation_type, operation_type.value)
        for template in self.templates:
            if prefix in template.lower():
                return template
        return operation_type.value

    @staticmethod
    def _context_parameters(context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not context:
            return {}

        tags: List[str] = []
        last_query = context.get("last_query") or context.get("lastQuery")
        if isinstance(last_query, str):
            for word in normalize_query(last_query).split():
                if len(word) > 2 and word not in NOISE_WORDS and word not in tags:
                    tags.append(word)

        location = context.get("current_location") or context.get("currentLocation")
        if isinstance(location, str) and location.strip() and location.strip() not in tags:
            tags.append(location.strip())

        return {"tags": tags} if tags else {}

    # ------------------------------------------------------------------
    # Per-operation parameter parsers: (original text, normalized text)
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_download(original: str, normalized: str) -> Tuple[Dict[str, Any], float]:
        if re.search(r"\b(individual(ly)?|separately|one by one)\b", normalized):
            file_format = "individual"
        else:
            file_format = "zip"

        if re.search(r"\b(selected|these|them|those|this)\b", normalized):
            target = "selected"
        elif re.search(r"\b(every photo|all photos|everything|whole library|entire library)\b", normalized):
            target = "all"
        else:
            target = "selected"

        parameters: Dict[str, Any] = {"format": file_format, "target": target}

        if re.search(r"\b(high|full|original)[\s-]+res(olution)?\b", normalized):
            parameters["resolution"] = "original"
        elif re.search(r"\b(low|web|small)[\s-]+(res(olution)?|size)\b", normalized):
            parameters["resolution"] = "web"

        return parameters, 0.95

    @staticmethod
    def _parse_tag(original: str, normalized: str) -> Tuple[Dict[str, Any], float]:
        action = "add"
        tags: List[str] = []

        remove = (
            re.search(r"\bremove\s+(?:the\s+)?tags?\s+(.+?)\s+from\b", original, re.IGNORECASE)
            or re.search(r"\buntag\s+(.+?)(?:\s+from\b|$)", original, re.IGNORECASE)
        )
        add = (
            re.search(r"\badd\s+(?:the\s+)?tags?\s+(.+?)\s+(?:to|on)\b", original, re.IGNORECASE)
            or re.search(r"\btag\s+(?:these|them|it|those|(?:the\s+)?(?:selected\s+)?photos?)?\s*as\s+(.+?)$",
                         original, re.IGNORECASE)
            or re.search(r"\b(?:tag|label)\s+(?:these|them|it|all)?\s*with\s+(.+?)$", original, re.IGNORECASE)
        )

        if remove:
            action = "remove"
            tags = split_terms(remove.group(1))
        elif add:
            tags = split_terms(add.group(1))

        return {"tags": tags, "action": action}, 0.9 if tags else 0.6

    @staticmethod
    def _album_name(original: str, patterns: List[str]) -> Optional[str]:
        for pattern in patterns:
            match = re.search(pattern, original, re.IGNORECASE)
            if match:
                name = match.group(1).strip(" \"'")
                if name and name.lower() not in NOISE_WORDS:
                    return name
        return None

    def _parse_album_create(self, original: str, normalized: str) -> Tuple[Dict[str, Any], float]:
        name = self._album_name(original, [
            r"album\s+(?:called|named|titled)\s+[\"']?(.+?)[\"']?\s+with\b",
            r"album\s+(?:called\s+|named\s+|titled\s+)?[\"']([^\"']+)[\"']",
            r"album\s+(?:called|named|titled)\s+(.+?)\s*$",
            r"\b(?:create|make|build|start)\s+(?:a\s+|an\s+|new\s+)*[\"']?(.+?)[\"']?\s+album\b",
        ])
        add_photos = bool(re.search(r"\bwith\b", normalized) and re.search(r"\b(photos?|selected|these|them)\b", normalized))
        parameters = {"album_name": name or "New Album", "add_photos": add_photos}
        return parameters, 0.85 if name else 0.75

    def _parse_album_add(self, original: str, normalized: str) -> Tuple[Dict[str, Any], float]:
        name = self._album_name(original, [
            r"\balbum\s+(?:called\s+|named\s+)?[\"']?(.+?)[\"']?\s*$",
            r"\bto\s+(?:the\s+|my\s+)?[\"']?(.+?)[\"']?\s+album\b",
        ])
        if not name:
            return {}, 0.5
        return {"album_name": name}, 0.85

    @staticmethod
    def _parse_export(original: str, normalized: str) -> Tuple[Dict[str, Any], float]:
        match = re.search(r"\b(json|csv|xml)\b", normalized)
        if match:
            return {"format": match.group(1)}, 0.9
        return {"format": "json"}, 0.8

    @staticmethod
    def _parse_analyze(original: str, normalized: str) -> Tuple[Dict[str, Any], float]:
        parameters: Dict[str, Any] = {"regenerate": True}
        match = re.search(r"\b(?:focus(?:ing)?\s+on|look(?:ing)?\s+for|with\s+instructions?)\s+(.+?)\s*$",
                          original, re.IGNORECASE)
        if match:
            parameters["custom_instructions"] = match.group(1).strip(" \"'")
        return parameters, 0.85

    @staticmethod
    def _parse_delete(original: str, normalized: str) -> Tuple[Dict[str, Any], float]:
        parameters: Dict[str, Any] = {}
        if re.search(r"\bpermanently\b", normalized):
            parameters["permanent"] = True
        return parameters, 0.9
