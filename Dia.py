#!/usr/bin/env python

# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

import logging
import os
import re

from pyparsing import (Group, Optional, ParseException, Suppress, Word,
  ZeroOrMore, OneOrMore, CaselessLiteral, alphanums, nums, one_of)

logger = logging.getLogger(__name__)

DIA_PATH = [os.path.join(os.path.dirname(os.path.abspath(__file__)), 'specs')]
DEFAULT_DICTS = ['base_rfc6733.dia', 'S6a.dia']

# marks an AVP carried without vendor id, distinct from any real vendor
UNDEFINED_VENDOR_ID = 0xffffffff

# exceptions are self-describing
class DictionaryError(Exception): pass
class InvalidSectionOccurence(DictionaryError): pass
class InvalidSectionArgument(DictionaryError): pass
class MissingIdSection(DictionaryError): pass
class MissingDefaultVendorIdSection(DictionaryError): pass
class AVPDefinedMultipleTimes(DictionaryError): pass
class MSGDefinedMultipleTimes(DictionaryError): pass
class MSGContainsInvalidId(DictionaryError): pass
class GroupedDefinitionForUnknownAVP(DictionaryError): pass
class EnumDefinitionForUnknownAVP(DictionaryError): pass
class AvpTypeInvalidLine(DictionaryError): pass
class MultipleDefinitionFound(DictionaryError): pass
class InheritedModuleNotFound(DictionaryError): pass
class DictionaryNotFound(DictionaryError): pass
class InvalidCCF(DictionaryError): pass

class InvalidAVPType(DictionaryError): pass
class InvalidAVPFlags(DictionaryError): pass

class EnumeratedAVPNotValued(DictionaryError): pass
class GroupedAVPNotDefined(DictionaryError): pass

class MSGUsesUndefinedAVP(DictionaryError): pass
class AVPUsesUndefinedAVP(DictionaryError): pass

class EnumDuplicatedDesc(DictionaryError): pass
class EnumDuplicatedValue(DictionaryError): pass
class AmbiguousAVPNaming(DictionaryError): pass

class AVPNotFound(Exception): pass
class NonExistingAppID(AVPNotFound): pass

def tokenize(whole):
  tokens = []
  for l in whole.split('\n'):
    l = l.rstrip('\r\n')
    l = re.sub(r';.*', '', l)

    if len(l.strip()) > 0:
      tokens.append(l)
  return tokens

'''
Grammar of CCF, for messages and grouped AVPs, as found in RFC 6733 and 3GPP specs.
'''

ident = Word(alphanums + '_-')
mul = Group(Optional(Word(nums)) + '*' + Optional(Word(nums)))

fixed_avp = '<' + ident + '>'
required_avp = '{' + ident + '}'
optional_avp = '[' + ident + ']'

equals = Suppress(':') + Suppress(':') + Suppress('=')
decl = Optional(Suppress('<')) + ident + Optional(Suppress('>'))

# a bracketed declaration of the next CCF must not be taken as a fixed AVP
qual_avp = Group(~(decl + equals) + Optional(mul) + (fixed_avp | required_avp | optional_avp))
qual_avps = Group(ZeroOrMore(qual_avp))

# rfc6733 itself is not consistent about the command name being enclosed in angle brackets,
# and header arguments mix flags and application id: sort them out after parsing
hdr_arg = Suppress(',') + (one_of('REQ PXY ERR') | Word(nums))
msg_hdr = Suppress('<') + Suppress(CaselessLiteral('Diameter')) + Suppress(Optional('-')) + \
  Suppress(CaselessLiteral('Header')) + Suppress(':') + Word(nums) + Group(ZeroOrMore(hdr_arg)) + Suppress('>')
msg_ccf = Group(decl + equals + msg_hdr + qual_avps)

avp_hdr = Suppress('<') + Suppress(CaselessLiteral('AVP')) + Suppress(Optional('-')) + \
  Suppress(CaselessLiteral('Header')) + Suppress(':') + Word(nums) + \
  Optional(Suppress(Optional(',')) + Word(nums), default=None) + Suppress('>')
avp_ccf = Group(decl + equals + avp_hdr + qual_avps)

def parse_qual_avp(result):
  (_min, times, _max) = (None, False, None)
  if len(result) == 4:
    elms = list(result[0])
    times = True
    star = elms.index('*')
    if star > 0: _min = elms[0]
    if star < len(elms)-1: _max = elms[-1]

  (s_delim, avp_name, e_delim) = result[-3:]
  if (s_delim, e_delim) == ('<', '>'): semantics = 'fixed'
  elif (s_delim, e_delim) == ('{', '}'): semantics = 'required'
  else: semantics = 'optional'

  return QualifiedAvp(times, _min, _max, semantics, avp_name)

def parse_ccf(whole, grammar):
  try:
    return OneOrMore(grammar).parse_string('\n'.join(tokenize(whole)), parse_all=True)
  except ParseException as e:
    raise InvalidCCF(e.lineno, e.line)

def parse_msgs(whole):
  for (name, code, args, avps) in parse_ccf(whole, msg_ccf):
    flags = [a for a in args if a in ('REQ', 'PXY', 'ERR')]
    appids = [int(a) for a in args if a not in flags]
    appid = appids[-1] if appids else 0
    yield ((name, int(code), flags, appid), [parse_qual_avp(a) for a in avps])

def parse_grouped(whole):
  for (name, code, vendor_id, avps) in parse_ccf(whole, avp_ccf):
    if vendor_id is not None:
      vendor_id = int(vendor_id)
    yield ((name, int(code), vendor_id), [parse_qual_avp(a) for a in avps])

class Avp:
  BASIC_DATATYPES = ['OctetString', 'Integer32', 'Integer64',
    'Unsigned32', 'Unsigned64', 'Float32', 'Float64', 'Grouped']
  DERIVED_DATATYPES = ['Address', 'Time', 'UTF8String', 'Enumerated',
    'DiameterIdentity', 'DiamIdent', 'DiameterURI', 'DiamURI', 'IPFilterRule', 'QoSFilterRule']

  def __hash__(self):
    return hash((self.code, self.vendor_id))

  def __eq__(self, other):
    return isinstance(other, Avp) and (self.code, self.vendor_id) == (other.code, other.vendor_id)

  def __init__(self, name, code, datatype, flags):
    self.name = name
    self.code = int(code, 0)
    self.vendor_id = 0

    if datatype not in Avp.BASIC_DATATYPES and \
      datatype not in Avp.DERIVED_DATATYPES:
      raise InvalidAVPType(datatype)
    if datatype == 'DiamIdent': datatype = 'DiameterIdentity'
    if datatype == 'DiamURI': datatype = 'DiameterURI'
    self.datatype = datatype

    if flags != '-' and any(c not in 'MVP' for c in flags):
      raise InvalidAVPFlags(flags)

    self.M = self.P = self.V = False
    for c in flags:
      if c == 'M': self.M = True
      if c == 'V': self.V = True
      if c == 'P': self.P = True

  def __repr__(self):
    return self.name

class QualifiedAvp:
  def __init__(self, multiple, occ_min, occ_max, semantics, name):
    self.name = name
    self.min = occ_min
    if occ_min: self.min = int(occ_min)
    self.multiple = multiple
    self.max = occ_max
    if occ_max: self.max = int(occ_max)

    assert(semantics in ['fixed', 'required', 'optional'])
    self.semantics = semantics
    self.avp = None

  def __repr__(self):
    if self.semantics == 'fixed':
      decorated = '< %s >' % self.name
    elif self.semantics == 'required':
      decorated = '{ %s }' % self.name
    else:
      decorated = '[ %s ]' % self.name

    if not self.multiple:
      return decorated
    return '%s*%s %s' % (self.min or '', self.max or '', decorated)

class Msg:
  '''message definition, only checked against AVP definitions at load time.'''
  def __init__(self, name, code, appid):
    self.name = name
    self.code = code
    self.appid = appid
    self.avps = []

  def __repr__(self):
    return '%s ::= <Diameter Header: %d>' % (self.name, self.code)

class Application:
  @staticmethod
  def load(f, dia_path=None):
    if dia_path is None:
      dia_path = DIA_PATH

    # read whole file at once
    with open(f, 'r', encoding='utf-8') as fh:
      whole = fh.read()

    app = Application()

    # split sections
    for m in re.finditer(r'^@(\w+)((?:[ \t]+(?:[a-zA-Z0-9-_]+))*)\s*$([^@]*)', whole, re.S|re.M):
      (name, args, content) = m.groups()
      arglist = re.findall(r'[a-zA-Z0-9-_]+', args)

      if name == 'id':
        if app.id is not None: raise InvalidSectionOccurence(name)
        if len(arglist) != 1: raise InvalidSectionArgument(name)
        app.id = int(arglist[0], 0)
      elif name == 'name':
        if app.name is not None: raise InvalidSectionOccurence(name)
        if len(arglist) not in [1, 2]: raise InvalidSectionArgument(name)
        # optional version argument is not used
        app.name = arglist[0]
      elif name == 'vendor':
        if app.default_vendor_id is not None: raise InvalidSectionOccurence(name)
        if len(arglist) != 2: raise InvalidSectionArgument(name)
        app.default_vendor_id = int(arglist[0], 0)
      elif name == 'avp_vendor_id':
        if len(arglist) != 1: raise InvalidSectionArgument(name)
        app.avp_vendors.append((int(arglist[0], 0), [l.strip() for l in tokenize(content)]))
      elif name == 'inherits':
        if len(arglist) != 1: raise InvalidSectionArgument(name)
        app.inherits.append((arglist[0], [l.strip() for l in tokenize(content)]))
      elif name == 'avp_types':
        for l in tokenize(content):
          if len(l.split()) != 4: raise AvpTypeInvalidLine(l)

          (avp_name, code, datatype, flags) = l.split()
          if app.find_avps(lambda x: x.code == int(code, 0)):
            raise AVPDefinedMultipleTimes(code)

          app.avps.append(Avp(avp_name, code, datatype, flags))
      elif name == 'messages':
        for (msg, avps) in parse_msgs(content):
          (msg_name, code, flags, appid) = msg
          if any(x.name == msg_name for x in app.msgs):
            raise MSGDefinedMultipleTimes(msg_name)

          if appid and app.id and appid != app.id:
            raise MSGContainsInvalidId(appid)

          m = Msg(msg_name, code, appid)
          m.avps = avps
          app.msgs.append(m)
      elif name == 'grouped':
        app.grouped.extend(parse_grouped(content))
      elif name == 'enum':
        if len(arglist) != 1: raise InvalidSectionArgument(name)
        app.enums.append((arglist[0], [l.split() for l in tokenize(content)]))
      else:
        logger.warning('%s: ignoring section %s', f, name)

    # need an id if msgs are contained in the dictionary
    if app.msgs and app.id is None:
      raise MissingIdSection(f, 'id')
    for m in app.msgs:
      m.appid = app.id

    # by default, name is set to name of file, without extension
    if app.name is None:
      basename = os.path.basename(f)
      app.name = basename.split(os.extsep)[0]

    # lookup and load inherited modules
    for (mod_name, avps) in app.inherits:
      for dpath in dia_path:
        modpath = os.path.join(dpath, mod_name + '.dia')
        if os.path.exists(modpath):
          break
      else:
        raise InheritedModuleNotFound(mod_name, dia_path)

      mod = Application.load(modpath, dia_path)

      if not avps: avps = [x.name for x in mod.avps]
      for a in avps:
        inherited = mod.find_avps(lambda x: x.name == a)
        if len(inherited) == 0: raise AVPUsesUndefinedAVP(mod_name, a)
        if len(inherited) != 1:
          logger.warning('several AVPs are named the same %r', inherited)
        app.inherited_avps.extend(inherited)

      logger.debug('%s inherits %d AVPs from %s', app.name, len(avps), mod_name)

    # process enum definitions
    for (enum_name, values) in app.enums:
      avps = app.find_avps(lambda x: x.name == enum_name)
      if len(avps) > 1: raise AVPDefinedMultipleTimes(enum_name)
      if len(avps) == 0: raise EnumDefinitionForUnknownAVP(enum_name)

      a = avps[0]
      a.val_to_desc = {}
      a.desc_to_val = {}

      for (desc, val) in values:
        n = int(val, 0)
        if desc in a.desc_to_val: raise EnumDuplicatedDesc(desc, a)
        if n in a.val_to_desc: raise EnumDuplicatedValue(val, a)

        a.val_to_desc[n] = desc
        a.desc_to_val[desc] = n

    # process grouped definitions
    for (gav, gavps) in app.grouped:
      (gav_name, code, vendor_id) = gav
      avps = app.find_avps(lambda x: x.name == gav_name)
      if len(avps) == 0: raise GroupedDefinitionForUnknownAVP(gav_name)

      avps[0].grouped = gavps

    # set vendor id for specified AVPs
    for (vendor, names) in app.avp_vendors:
      for a in app.avps:
        if a.name in names: a.vendor_id = vendor
    # vendor AVP need a default vendor id, when vendor id is not specified in AVP itself
    for a in app.avps:
      if a.V and not a.vendor_id:
        if app.default_vendor_id is None: raise MissingDefaultVendorIdSection(a.name)
        a.vendor_id = app.default_vendor_id

    # consistency checks
    for a in app.avps:
      if a.datatype == 'Enumerated':
        if not getattr(a, 'val_to_desc', None):
          raise EnumeratedAVPNotValued(a.name)
      if a.datatype == 'Grouped':
        if not getattr(a, 'grouped', None):
          raise GroupedAVPNotDefined(a.name)

    app.verify()

    logger.debug('loaded %s (%r): %d AVPs, %d messages', app.name, app.id, len(app.avps), len(app.msgs))

    return app

  def verify(self):
    # definition checks
    for m in self.msgs:
      for qa in m.avps:
        if qa.name != 'AVP':
          avps = self.find_avps(lambda x: x.name == qa.name)
          if len(avps) == 0:
            raise MSGUsesUndefinedAVP(m.name, qa.name)
          if len(avps) != 1:
            raise AmbiguousAVPNaming(m.name, qa.name)
          qa.avp = avps[0]

    for a in self.avps:
      if a.datatype == 'Grouped':
        for qa in a.grouped:
          if qa.name != 'AVP':
            avps = self.find_avps(lambda x: x.name == qa.name)
            if len(avps) == 0:
              raise AVPUsesUndefinedAVP(a.name, qa.name)
            if len(avps) != 1:
              raise MultipleDefinitionFound(a.name, qa.name)
            qa.avp = avps[0]

  def __init__(self):
    self.id = None
    self.name = None
    self.default_vendor_id = None
    self.avp_vendors = []
    self.inherits = []
    self.avps = []
    self.inherited_avps = []
    self.msgs = []
    self.enums = []
    self.grouped = []

  def find_avps(self, f=lambda x: True):
    avps = []
    for a in self.avps:
      if f(a): avps.append(a)
    for a in self.inherited_avps:
      if f(a): avps.append(a)
    return avps

  def __repr__(self):
    return '<Application %s (%r)>' % (self.name, self.id)

def vendor_marker(vendor):
  if vendor == 0:
    return UNDEFINED_VENDOR_ID
  return vendor

class Directory:
  '''Set of loaded applications, indexed by application id.
Read-only once built, it can be shared between decoders.'''
  def __init__(self, *args, dia_path=None):
    self.ids = {}
    self.apps = []

    if dia_path is None:
      dia_path = DIA_PATH

    if len(args) == 0:
      args = []
      for n in DEFAULT_DICTS:
        for dpath in dia_path:
          if os.path.exists(os.path.join(dpath, n)):
            args.append(os.path.join(dpath, n))
            break
        else:
          raise DictionaryNotFound(n, dia_path)

    for arg in args:
      app = Application.load(arg, dia_path)

      if app.id not in self.ids:
        self.ids[app.id] = []
      self.ids[app.id].append(app)
      self.apps.append(app)

  def find_avp(self, appid, code, vendor=UNDEFINED_VENDOR_ID):
    '''find AVP definition within application scope.
Vendor must be UNDEFINED_VENDOR_ID for AVPs not carrying vendor id.'''
    if appid not in self.ids: raise NonExistingAppID(appid)
    for app in self.ids[appid]:
      if vendor == UNDEFINED_VENDOR_ID:
        avps = app.find_avps(lambda x: not x.V and x.code == code)
      else:
        avps = app.find_avps(lambda x: x.V and x.vendor_id == vendor and x.code == code)
      if avps:
        return avps[0]
    raise AVPNotFound(appid, code, vendor)

  def lookup_avp(self, appid, code, vendor):
    '''application specific definition first, then base application.
vendor is the wire vendor id, 0 when absent.'''
    vendor = vendor_marker(vendor)
    for scope in (appid, 0):
      try:
        return self.find_avp(scope, code, vendor)
      except AVPNotFound:
        continue
    return None
