"""URL matching for route handlers and navigation waits: globs, regexes, predicates."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlsplit, urlunsplit

if TYPE_CHECKING:
	from browser_channel.route_handler import RouteHandler

URLMatch = str | re.Pattern[str] | Callable[[str], bool]

_ESCAPED_GLOB_CHARS = frozenset('$^+.*()|\\?{}[]')

_JS_REGEX_FLAGS = (
	(re.IGNORECASE, 'i'),
	(re.MULTILINE, 'm'),
	(re.DOTALL, 's'),
)


def glob_to_regex(glob: str) -> str:
	"""Translate a URL glob into an anchored regular expression source.

	``*`` matches inside one path segment, ``**`` between slashes matches any number
	of segments, ``{a,b}`` is an alternation and a backslash escapes the next char.
	"""
	tokens = ['^']
	in_group = False
	i = 0
	while i < len(glob):
		c = glob[i]
		if c == '\\' and i + 1 < len(glob):
			i += 1
			char = glob[i]
			tokens.append('\\' + char if char in _ESCAPED_GLOB_CHARS else char)
		elif c == '*':
			before = glob[i - 1] if i > 0 else None
			star_count = 1
			while i < len(glob) - 1 and glob[i + 1] == '*':
				star_count += 1
				i += 1
			after = glob[i + 1] if i < len(glob) - 1 else None
			is_deep = star_count > 1 and before in ('/', None) and after in ('/', None)
			if is_deep:
				tokens.append('((?:[^/]*(?:/|$))*)')
				i += 1
			else:
				tokens.append('([^/]*)')
		elif c == '{':
			in_group = True
			tokens.append('(')
		elif c == '}':
			in_group = False
			tokens.append(')')
		elif c == ',':
			tokens.append('|' if in_group else '\\,')
		else:
			tokens.append('\\' + c if c in _ESCAPED_GLOB_CHARS else c)
		i += 1
	tokens.append('$')
	return ''.join(tokens)


def fixup_trailing_slash(url: str) -> str:
	"""``http://host`` becomes ``http://host/``, the form drivers report."""
	parts = urlsplit(url)
	if parts.netloc and not parts.path:
		return urlunsplit(parts._replace(path='/'))
	return url


def construct_url_based_on_base_url(base_url: str | None, url: str) -> str:
	try:
		if not base_url:
			parts = urlsplit(url)
			if not parts.scheme or not parts.netloc:
				return url
			return fixup_trailing_slash(url)
		return fixup_trailing_slash(urljoin(base_url, url))
	except ValueError:
		return url


def resolve_glob_base(base_url: str | None, glob: str) -> str:
	"""Resolve a relative glob against ``base_url`` without mangling glob syntax.

	Every path token is swapped for a URL-safe placeholder before resolution and
	restored afterwards, so ``*``, ``{a,b}`` and ``?`` survive. A leading scheme
	token such as ``http*:`` resolves as ``http:`` to keep the glob absolute.
	"""
	if not glob or glob.startswith('*'):
		return glob
	token_map: dict[str, str] = {}

	def map_token(original: str, replacement: str) -> str:
		if not original:
			return ''
		token_map[replacement] = original
		return replacement

	# An escaped `\\?` behaves the same as `?` in globs.
	glob = glob.replace('\\\\?', '?')
	tokens: list[str] = []
	for index, token in enumerate(glob.split('/')):
		if token in ('.', '..', ''):
			tokens.append(token)
		elif index == 0 and token.endswith(':'):
			tokens.append(map_token(token, 'http:'))
		elif '?' not in token:
			tokens.append(map_token(token, f'browser-channel-{index}-token'))
		else:
			question = token.index('?')
			prefix = map_token(token[:question], f'browser-channel-{index}-token')
			suffix = map_token(token[question:], f'?browser-channel-{index}-query')
			tokens.append(prefix + suffix)

	resolved = construct_url_based_on_base_url(base_url, '/'.join(tokens))
	for replacement, original in token_map.items():
		resolved = resolved.replace(replacement, original)
	return resolved


def regex_flags_to_js(pattern: re.Pattern[str]) -> str:
	return ''.join(flag for python_flag, flag in _JS_REGEX_FLAGS if pattern.flags & python_flag)


class URLMatcher:
	"""Exactly one of a glob, a compiled regex or a predicate over the URL string."""

	def __init__(self, match: URLMatch, base_url: str | None = None):
		self.match = match
		self.base_url = base_url
		self._regex: re.Pattern[str] | None = None
		self._predicate: Callable[[str], bool] | None = None
		self._glob: str | None = None
		if isinstance(match, str):
			self._glob = resolve_glob_base(base_url, match)
			if self._glob:
				self._regex = re.compile(glob_to_regex(self._glob))
		elif isinstance(match, re.Pattern):
			self._regex = match
		elif callable(match):
			self._predicate = match
		else:
			raise TypeError(f'URL matcher must be a glob string, re.Pattern or callable, got {type(match).__name__}')

	@property
	def glob(self) -> str | None:
		return self._glob

	@property
	def is_predicate(self) -> bool:
		return self._predicate is not None

	def matches(self, url: str) -> bool:
		if self._predicate is not None:
			return bool(self._predicate(url))
		if self._regex is not None:
			return self._regex.search(url) is not None
		return True

	def interception_pattern(self) -> dict[str, Any] | None:
		if self._glob is not None:
			return {'glob': self._glob}
		if self._regex is not None:
			return {'regexSource': self._regex.pattern, 'regexFlags': regex_flags_to_js(self._regex)}
		return None

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, URLMatcher):
			return NotImplemented
		if isinstance(self.match, re.Pattern) and isinstance(other.match, re.Pattern):
			return self.match.pattern == other.match.pattern and self.match.flags == other.match.flags
		if isinstance(self.match, str) and isinstance(other.match, str):
			return self._glob == other._glob
		return self.match is other.match

	def __hash__(self) -> int:
		if isinstance(self.match, re.Pattern):
			return hash((self.match.pattern, self.match.flags))
		if isinstance(self.match, str):
			return hash(self._glob)
		return id(self.match)

	def __repr__(self) -> str:
		return f'URLMatcher({self.match!r})'


def prepare_interception_patterns(handlers: Iterable[RouteHandler]) -> dict[str, Any]:
	patterns: list[dict[str, Any]] = []
	for handler in handlers:
		if handler.matcher.is_predicate:
			return {'patterns': [{'glob': '**/*'}]}
		pattern = handler.matcher.interception_pattern()
		patterns.append(pattern if pattern is not None else {'glob': '**/*'})
	return {'patterns': patterns}
